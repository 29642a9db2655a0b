import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

OWNER_TYPE_CHOICES = [
    ('NATIONAL', 'National'),
    ('REGIONAL', 'Regional'),
    ('DISTRICT', 'District'),
    ('HEALTHCENTER', 'Health center'),
]


def _aggregate_fields(owner_field=None, verbose=None):
    fields = [
        ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
        ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
        ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
        ('quantity', models.PositiveIntegerField(default=0, verbose_name='quantity')),
    ]
    if owner_field:
        fields.append((owner_field, models.UUIDField(db_index=True, verbose_name=verbose)))
    fields.append(
        ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='+', to='vaccines.vaccine', verbose_name='vaccine')),
    )
    return fields


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('vaccines', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PendingStockTransfer',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('from_type', models.CharField(choices=OWNER_TYPE_CHOICES, max_length=12, verbose_name='from type')),
                ('from_id', models.UUIDField(blank=True, null=True, verbose_name='from ID')),
                ('to_type', models.CharField(choices=OWNER_TYPE_CHOICES, max_length=12, verbose_name='to type')),
                ('to_id', models.UUIDField(blank=True, null=True, verbose_name='to ID')),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('status', models.CharField(choices=[('PENDING', 'Pending'), ('CONFIRMED', 'Confirmed'), ('CANCELLED', 'Cancelled')], db_index=True, default='PENDING', max_length=10, verbose_name='status')),
                ('resolved_at', models.DateTimeField(blank=True, null=True, verbose_name='resolved at')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='created by')),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='resolved by')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='pending_transfers', to='vaccines.vaccine', verbose_name='vaccine')),
            ],
            options={
                'verbose_name': 'pending stock transfer',
                'verbose_name_plural': 'pending stock transfers',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['to_type', 'to_id', 'status'], name='stock_pending_to_idx')],
            },
        ),
        migrations.CreateModel(
            name='StockLot',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('owner_type', models.CharField(choices=OWNER_TYPE_CHOICES, db_index=True, max_length=12, verbose_name='owner type')),
                ('owner_id', models.UUIDField(blank=True, db_index=True, help_text='Region, district or health center UUID; empty for national stock', null=True, verbose_name='owner ID')),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('remaining_quantity', models.PositiveIntegerField(verbose_name='remaining quantity')),
                ('expiration', models.DateTimeField(db_index=True, verbose_name='expiration')),
                ('status', models.CharField(choices=[('VALID', 'Valid'), ('EXPIRED', 'Expired'), ('PENDING', 'Pending')], db_index=True, default='VALID', max_length=8, verbose_name='status')),
                ('pending_transfer', models.ForeignKey(blank=True, help_text='Set while the lot waits for a pending transfer to be confirmed', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='destination_lots', to='stock.pendingstocktransfer', verbose_name='pending transfer')),
                ('source_lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='derived_lots', to='stock.stocklot', verbose_name='source lot')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='stock_lots', to='vaccines.vaccine', verbose_name='vaccine')),
            ],
            options={
                'verbose_name': 'stock lot',
                'verbose_name_plural': 'stock lots',
                'ordering': ['expiration'],
                'indexes': [
                    models.Index(fields=['vaccine', 'owner_type', 'owner_id', 'status'], name='stock_lot_owner_idx'),
                    models.Index(fields=['status', 'expiration'], name='stock_lot_status_exp_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('remaining_quantity__lte', models.F('quantity'))), name='stock_lot_remaining_lte_quantity'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PendingStockTransferLot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('expiration', models.DateTimeField(blank=True, null=True, verbose_name='lot expiration')),
                ('lot', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pending_transfer_lines', to='stock.stocklot', verbose_name='lot')),
                ('pending_transfer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lots', to='stock.pendingstocktransfer', verbose_name='pending transfer')),
            ],
            options={
                'verbose_name': 'pending stock transfer lot',
                'verbose_name_plural': 'pending stock transfer lots',
            },
        ),
        migrations.CreateModel(
            name='StockTransfer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('from_type', models.CharField(choices=OWNER_TYPE_CHOICES, max_length=12, verbose_name='from type')),
                ('from_id', models.UUIDField(blank=True, null=True, verbose_name='from ID')),
                ('to_type', models.CharField(choices=OWNER_TYPE_CHOICES, max_length=12, verbose_name='to type')),
                ('to_id', models.UUIDField(blank=True, null=True, verbose_name='to ID')),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('vaccine', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='stock_transfers', to='vaccines.vaccine', verbose_name='vaccine')),
            ],
            options={
                'verbose_name': 'stock transfer',
                'verbose_name_plural': 'stock transfers',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['from_type', 'from_id'], name='stock_transfer_from_idx'),
                    models.Index(fields=['to_type', 'to_id'], name='stock_transfer_to_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockTransferLot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.PositiveIntegerField(verbose_name='quantity')),
                ('lot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='transfer_lines', to='stock.stocklot', verbose_name='lot')),
                ('transfer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lots', to='stock.stocktransfer', verbose_name='transfer')),
            ],
            options={
                'verbose_name': 'stock transfer lot',
                'verbose_name_plural': 'stock transfer lots',
            },
        ),
        migrations.CreateModel(
            name='StockReservation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('schedule_id', models.UUIDField(blank=True, db_index=True, null=True, verbose_name='schedule ID')),
                ('quantity', models.PositiveIntegerField(default=1, verbose_name='quantity')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='created at')),
                ('stock_lot', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='stock.stocklot', verbose_name='stock lot')),
            ],
            options={
                'verbose_name': 'stock reservation',
                'verbose_name_plural': 'stock reservations',
                'ordering': ['-created_at'],
            },
        ),
        migrations.CreateModel(
            name='NationalStock',
            fields=_aggregate_fields(),
            options={
                'verbose_name': 'national stock',
                'verbose_name_plural': 'national stocks',
                'constraints': [models.UniqueConstraint(fields=('vaccine',), name='unique_national_stock')],
            },
        ),
        migrations.CreateModel(
            name='RegionalStock',
            fields=_aggregate_fields('region_id', 'region ID'),
            options={
                'verbose_name': 'regional stock',
                'verbose_name_plural': 'regional stocks',
                'constraints': [models.UniqueConstraint(fields=('vaccine', 'region_id'), name='unique_regional_stock')],
            },
        ),
        migrations.CreateModel(
            name='DistrictStock',
            fields=_aggregate_fields('district_id', 'district ID'),
            options={
                'verbose_name': 'district stock',
                'verbose_name_plural': 'district stocks',
                'constraints': [models.UniqueConstraint(fields=('vaccine', 'district_id'), name='unique_district_stock')],
            },
        ),
        migrations.CreateModel(
            name='HealthCenterStock',
            fields=_aggregate_fields('health_center_id', 'health center ID'),
            options={
                'verbose_name': 'health center stock',
                'verbose_name_plural': 'health center stocks',
                'constraints': [models.UniqueConstraint(fields=('vaccine', 'health_center_id'), name='unique_health_center_stock')],
            },
        ),
    ]
