import pytest


@pytest.fixture(autouse=True)
def _eager_celery():
    # On-commit side effects run the Celery task inline instead of
    # reaching for a broker. The app reads its config with the CELERY
    # namespace, so the prefixed key is the one that takes effect.
    from labflow.celery import app

    previous = app.conf.CELERY_TASK_ALWAYS_EAGER
    app.conf.CELERY_TASK_ALWAYS_EAGER = True
    yield
    app.conf.CELERY_TASK_ALWAYS_EAGER = previous
