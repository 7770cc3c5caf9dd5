import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='SecurityEventLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(choices=[('FORCE_NOT_ALLOWED', 'Force Transition Denied'), ('INVALID_DELIVERY_TOKEN', 'Invalid Delivery Token'), ('CROSS_STORE_ACCESS', 'Cross-Store Access Attempt'), ('RATE_LIMIT_EXCEEDED', 'Rate Limit Exceeded')], db_index=True, max_length=30)),
                ('severity', models.CharField(choices=[('LOW', 'Low'), ('MEDIUM', 'Medium'), ('HIGH', 'High'), ('CRITICAL', 'Critical')], db_index=True, default='MEDIUM', max_length=10)),
                ('details', models.JSONField(default=dict)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('user', models.ForeignKey(blank=True, help_text='User involved (null for anonymous couriers)', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='security_events', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Security Event Log',
                'verbose_name_plural': 'Security Event Logs',
                'db_table': 'security_event_log',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['event_type', 'severity'], name='security_ev_type_sev_idx'),
                    models.Index(fields=['ip_address', 'timestamp'], name='security_ev_ip_ts_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OperatorActionLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(choices=[('FORCE_TRANSITION', 'Forced Status Transition'), ('HARD_DELETE_ORDER', 'Hard Delete Order'), ('SOFT_DELETE_ORDER', 'Soft Delete Order')], db_index=True, max_length=30)),
                ('order_reference', models.CharField(help_text='Order id (kept as text so hard deletes stay traceable)', max_length=64)),
                ('details', models.JSONField(default=dict)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('timestamp', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('operator', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='operator_actions', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Operator Action Log',
                'verbose_name_plural': 'Operator Action Logs',
                'db_table': 'operator_action_log',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['operator', 'timestamp'], name='operator_ac_op_ts_idx'),
                    models.Index(fields=['order_reference'], name='operator_ac_order_idx'),
                ],
            },
        ),
    ]
