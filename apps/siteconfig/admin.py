from django.contrib import admin

from apps.siteconfig.models import Setting


@admin.register(Setting)
class SettingAdmin(admin.ModelAdmin):
    list_display = ("key", "group", "value", "value_type", "updated_at")
    list_filter = ("group", "value_type")
    search_fields = ("key",)
