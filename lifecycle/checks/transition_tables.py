# lifecycle/checks/transition_tables.py

from django.core.checks import Error, register

from lifecycle.workflows.rules import (
    EntityType,
    get_transitions,
    initial_status,
    statuses_for,
    terminal_statuses,
)
from lifecycle.workflows.store import MODEL_REGISTRY


@register()
def check_transition_tables(app_configs, **kwargs):
    """
    Django system check for transition table integrity.

    - every rule references known statuses and is not a self-loop
    - every non-terminal status has an outgoing rule
    - every terminal status has none
    - each entity model's status default is the initial status
    """
    errors = []

    for kind in EntityType:
        universe = set(statuses_for(kind))
        terminal = terminal_statuses(kind)
        rules = get_transitions(kind)
        sources = {rule.from_status for rule in rules}

        for rule in rules:
            unknown = {rule.from_status, rule.to_status} - universe
            if unknown:
                errors.append(
                    Error(
                        f"{kind.value} rule {rule.from_status} -> {rule.to_status} "
                        "references unknown status",
                        hint=", ".join(sorted(unknown)),
                        id="lifecycle.E001",
                    )
                )
            if rule.from_status == rule.to_status:
                errors.append(
                    Error(
                        f"{kind.value} rule {rule.from_status} -> {rule.to_status} is a self-transition",
                        id="lifecycle.E002",
                    )
                )

        for status in sorted(universe):
            if status in terminal and status in sources:
                errors.append(
                    Error(
                        f"{kind.value} terminal status '{status}' has outgoing transitions",
                        id="lifecycle.E003",
                    )
                )
            if status not in terminal and status not in sources:
                errors.append(
                    Error(
                        f"{kind.value} status '{status}' is not terminal but has no outgoing transitions",
                        id="lifecycle.E003",
                    )
                )

    for kind, (model, _org_path) in MODEL_REGISTRY.items():
        default = model._meta.get_field(model.STATUS_FIELD).get_default()
        if default != initial_status(kind):
            errors.append(
                Error(
                    f"{model.__name__}.{model.STATUS_FIELD} defaults to '{default}', "
                    f"expected initial status '{initial_status(kind)}'",
                    id="lifecycle.E004",
                )
            )

    return errors
