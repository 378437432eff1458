from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Document",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("collection", models.CharField(max_length=32)),
                ("key", models.CharField(max_length=128)),
                ("version", models.PositiveIntegerField(default=1)),
                ("body", models.JSONField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [models.Index(fields=["collection", "created_at"], name="document_collection_created")],
                "constraints": [
                    models.UniqueConstraint(fields=("collection", "key"), name="unique_document_key"),
                ],
            },
        ),
    ]
