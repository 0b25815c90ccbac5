# Generated manually
import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ProductCategory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200, unique=True)),
                ('description', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'product_categories',
                'verbose_name_plural': 'product categories',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(db_index=True, max_length=200)),
                ('drug_name', models.CharField(blank=True, max_length=200)),
                ('description', models.TextField(blank=True)),
                ('sku', models.CharField(max_length=100, unique=True)),
                ('barcode', models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ('cost_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('selling_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('quantity', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='On-hand quantity across all warehouses', max_digits=12)),
                ('unit_of_measure', models.CharField(default='PCS', max_length=20)),
                ('low_stock_threshold', models.DecimalField(decimal_places=2, default=Decimal('10.00'), max_digits=12)),
                ('expiry_date', models.DateField(blank=True, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('expired', 'Expired'), ('out_of_stock', 'Out of Stock')], default='active', max_length=20)),
                ('product_type', models.CharField(choices=[('raw', 'Raw Material'), ('semi-raw', 'Semi-Raw Material'), ('finished', 'Finished Product')], default='finished', max_length=20)),
                ('manufacturer', models.CharField(blank=True, max_length=200)),
                ('location', models.CharField(blank=True, max_length=100)),
                ('shelf', models.CharField(blank=True, max_length=50)),
                ('grade', models.CharField(choices=[('P', 'Pharmaceutical'), ('F', 'Food'), ('T', 'Technical')], default='P', max_length=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('category', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='products', to='catalog.productcategory')),
            ],
            options={
                'db_table': 'products',
                'ordering': ['name'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_product_status'),
                    models.Index(fields=['expiry_date'], name='idx_product_expiry'),
                    models.Index(fields=['product_type'], name='idx_product_type'),
                ],
            },
        ),
    ]
