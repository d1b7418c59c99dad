from django.apps import AppConfig


class EventstoreConfig(AppConfig):
    name = "eventstore"
    verbose_name = "Event-sourced key/value store"

    def ready(self):
        from eventstore.repository import get_repository

        # Make sure the data file exists before the first request
        get_repository().initialise()
