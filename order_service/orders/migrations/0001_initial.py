from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OrderRecord",
            fields=[
                (
                    "order_uid",
                    models.TextField(primary_key=True, serialize=False),
                ),
                ("order_data", models.TextField()),
            ],
            options={
                "db_table": "orders",
            },
        ),
    ]
