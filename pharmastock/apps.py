"""Django app configuration for Pharmastock."""

from django.apps import AppConfig
from django.utils.translation import gettext_lazy as _


class PharmastockConfig(AppConfig):
    """Configuration for Pharmastock app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "pharmastock"
    verbose_name = _("Inventario Farmacéutico")
