import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='CommercePlatformIntegration',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('platform', models.CharField(choices=[('shopify', 'Shopify')], default='shopify', max_length=20)),
                ('shop_domain', models.CharField(max_length=255)),
                ('access_token_encrypted', models.TextField(blank=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('disconnected', 'Disconnected')], db_index=True, default='active', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='integrations', to='accounts.store')),
            ],
            options={
                'verbose_name': 'Commerce Platform Integration',
                'verbose_name_plural': 'Commerce Platform Integrations',
                'constraints': [models.UniqueConstraint(fields=('store', 'platform'), name='unique_store_platform_integration')],
            },
        ),
    ]
