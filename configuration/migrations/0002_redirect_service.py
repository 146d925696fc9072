import json

from django.db import migrations

REDIRECT_SERVICE_DEFAULT = {
    "production_url": "",
    "staging_url": "",
    "service_name": "",
    "hash": "",
}


def create_redirect_service_record(apps, schema_editor):
    Configuration = apps.get_model("configuration", "Configuration")
    Configuration.objects.get_or_create(
        key="redirect_service",
        defaults={
            "data_type": "json",
            "value": json.dumps(REDIRECT_SERVICE_DEFAULT, indent=2),
            "description": (
                "Redirect registration service: production_url and staging_url "
                "are base URLs, service_name and hash are the basic auth "
                "credentials"
            ),
        },
    )


def remove_redirect_service_record(apps, schema_editor):
    Configuration = apps.get_model("configuration", "Configuration")
    Configuration.objects.filter(key="redirect_service").delete()


class Migration(migrations.Migration):
    dependencies = [
        ("configuration", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(
            create_redirect_service_record, remove_redirect_service_record
        ),
    ]
