from django.apps import AppConfig


class LendingAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'lending_app'
    verbose_name = 'Lending'
