from django.apps import AppConfig


class AfterSalesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'after_sales'
    verbose_name = 'After-Sales'
