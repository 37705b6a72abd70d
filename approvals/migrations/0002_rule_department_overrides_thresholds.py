import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

CATEGORY_CHOICES = [
    ('purchase_request', 'Purchase Request'),
    ('purchase_order', 'Purchase Order'),
    ('contracts', 'Contracts'),
    ('capex', 'CAPEX'),
    ('payments', 'Payments'),
    ('float_cash', 'Float Cash'),
]
OVERRIDE_TYPE_CHOICES = [
    ('emergency_purchase', 'Emergency Purchase'),
    ('single_source_justification', 'Single Source Justification'),
    ('capex_special', 'CAPEX Special'),
    ('float_cash_replenishment', 'Float Cash Replenishment'),
    ('budget_override', 'Budget Override'),
]


class Migration(migrations.Migration):

    dependencies = [
        ('approvals', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.AddField(
            model_name='approvalrule',
            name='department',
            field=models.CharField(blank=True, db_index=True, max_length=100, null=True),
        ),
        migrations.CreateModel(
            name='ApprovalOverride',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('override_type', models.CharField(choices=OVERRIDE_TYPE_CHOICES, max_length=40)),
                ('name_en', models.CharField(max_length=200)),
                ('name_ar', models.CharField(blank=True, max_length=200)),
                ('category', models.CharField(blank=True, choices=CATEGORY_CHOICES, max_length=30, null=True)),
                ('conditions', models.JSONField(blank=True, default=dict)),
                ('bypass_levels', models.JSONField(blank=True, default=list)),
                ('require_justification', models.BooleanField(default=True)),
                ('max_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=16, null=True)),
                ('valid_from', models.DateTimeField(blank=True, null=True)),
                ('valid_until', models.DateTimeField(blank=True, null=True)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
            },
        ),
        migrations.CreateModel(
            name='ApprovalThreshold',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('module', models.CharField(choices=CATEGORY_CHOICES, db_index=True, max_length=30)),
                ('min_amount', models.DecimalField(decimal_places=2, default=0, max_digits=16)),
                ('max_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=16, null=True)),
                ('approver_role', models.CharField(max_length=50)),
                ('approver_role_ar', models.CharField(blank=True, max_length=200)),
                ('sequence_order', models.PositiveIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1)])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['module', 'sequence_order', 'id'],
            },
        ),
    ]
