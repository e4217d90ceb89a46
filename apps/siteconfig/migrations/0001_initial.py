from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Setting",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=100, unique=True)),
                ("value", models.TextField(blank=True)),
                (
                    "value_type",
                    models.CharField(
                        choices=[("text", "Text"), ("number", "Number"), ("boolean", "Boolean")],
                        default="text",
                        max_length=16,
                    ),
                ),
                ("group", models.CharField(default="general", max_length=50)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["group", "key"],
            },
        ),
    ]
