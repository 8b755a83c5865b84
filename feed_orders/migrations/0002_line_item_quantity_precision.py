# Generated manually: three-decimal feeding quantities, feed items always in kg
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('feed_orders', '0001_initial'),
    ]

    operations = [
        migrations.AlterField(
            model_name='feedorderlineitem',
            name='quantity_per_time',
            field=models.DecimalField(decimal_places=3, max_digits=10),
        ),
        migrations.RemoveField(
            model_name='feeditem',
            name='unit',
        ),
    ]
