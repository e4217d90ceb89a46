from django.db import models


class SettingType(models.TextChoices):
    TEXT = "text", "Text"
    NUMBER = "number", "Number"
    BOOLEAN = "boolean", "Boolean"


class Setting(models.Model):
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField(blank=True)
    value_type = models.CharField(max_length=16, choices=SettingType.choices, default=SettingType.TEXT)
    group = models.CharField(max_length=50, default="general")
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["group", "key"]

    def __str__(self):
        return f"{self.group}.{self.key}"
