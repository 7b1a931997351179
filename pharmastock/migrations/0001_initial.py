"""
Initial migration for Pharmastock models.
"""

from decimal import Decimal
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    """Create Pharmastock models: master data, ledger, orders, requests."""

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('sku', models.CharField(max_length=64, verbose_name='SKU')),
                ('name', models.CharField(max_length=200, verbose_name='Nombre')),
                ('generic_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Nombre genérico')),
                ('is_active', models.BooleanField(default=True, verbose_name='Activo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Producto',
                'verbose_name_plural': 'Productos',
                'ordering': ['name'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'sku'), name='unique_product_sku_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Warehouse',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('code', models.CharField(help_text='Identificador único dentro del tenant (ej: LPZ-01)', max_length=50, verbose_name='Código')),
                ('name', models.CharField(max_length=150, verbose_name='Nombre')),
                ('city', models.CharField(blank=True, default='', max_length=100, verbose_name='Ciudad')),
                ('is_active', models.BooleanField(default=True, verbose_name='Activo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Almacén',
                'verbose_name_plural': 'Almacenes',
                'ordering': ['code'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'code'), name='unique_warehouse_code_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='TenantSequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(max_length=64, verbose_name='Tenant')),
                ('year', models.PositiveIntegerField(verbose_name='Año')),
                ('key', models.CharField(max_length=16, verbose_name='Clave')),
                ('current_value', models.PositiveIntegerField(default=0, verbose_name='Valor actual')),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Secuencia',
                'verbose_name_plural': 'Secuencias',
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'year', 'key'), name='unique_sequence_per_tenant_year_key'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('code', models.CharField(help_text='Identificador dentro del almacén (ej: A-01, FRIO)', max_length=50, verbose_name='Código')),
                ('name', models.CharField(blank=True, default='', max_length=150, verbose_name='Nombre')),
                ('is_active', models.BooleanField(default=True, verbose_name='Activo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('warehouse', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='locations', to='pharmastock.warehouse', verbose_name='Almacén')),
            ],
            options={
                'verbose_name': 'Ubicación',
                'verbose_name_plural': 'Ubicaciones',
                'ordering': ['warehouse', 'code'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'warehouse', 'code'), name='unique_location_code_per_warehouse'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProductPresentation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('name', models.CharField(max_length=100, verbose_name='Nombre')),
                ('units_per_presentation', models.DecimalField(decimal_places=4, default=Decimal('1'), max_digits=18, verbose_name='Unidades por presentación')),
                ('is_default', models.BooleanField(default=False, verbose_name='Por defecto')),
                ('sort_order', models.PositiveIntegerField(default=0, verbose_name='Orden')),
                ('is_active', models.BooleanField(default=True, verbose_name='Activo')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='presentations', to='pharmastock.product', verbose_name='Producto')),
            ],
            options={
                'verbose_name': 'Presentación',
                'verbose_name_plural': 'Presentaciones',
                'ordering': ['product', 'sort_order', 'name'],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_default', True)), fields=('product',), name='unique_default_presentation_per_product'),
                    models.CheckConstraint(condition=models.Q(('units_per_presentation__gt', 0)), name='presentation_units_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Batch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('batch_number', models.CharField(max_length=64, verbose_name='Número de lote')),
                ('manufactured_at', models.DateField(blank=True, null=True, verbose_name='Fecha de fabricación')),
                ('expires_at', models.DateField(blank=True, db_index=True, help_text='Último día en que el lote puede despacharse', null=True, verbose_name='Fecha de vencimiento')),
                ('status', models.CharField(choices=[('QUARANTINE', 'Cuarentena'), ('RELEASED', 'Liberado'), ('REJECTED', 'Rechazado'), ('USED', 'Consumido')], db_index=True, default='QUARANTINE', max_length=20, verbose_name='Estado')),
                ('source_type', models.CharField(blank=True, default='', max_length=40, verbose_name='Tipo de origen')),
                ('source_id', models.CharField(blank=True, default='', max_length=64, verbose_name='ID de origen')),
                ('opened_at', models.DateTimeField(blank=True, null=True, verbose_name='Abierto en')),
                ('released_at', models.DateTimeField(blank=True, null=True, verbose_name='Liberado en')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Creado en')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('opened_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Abierto por')),
                ('presentation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='pharmastock.productpresentation', verbose_name='Presentación')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='batches', to='pharmastock.product', verbose_name='Producto')),
                ('released_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Liberado por')),
            ],
            options={
                'verbose_name': 'Lote',
                'verbose_name_plural': 'Lotes',
                'ordering': ['expires_at', 'batch_number'],
                'indexes': [
                    models.Index(fields=['tenant_id', 'product', 'expires_at'], name='ps_batch_expiry_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'product', 'batch_number'), name='unique_batch_number_per_product'),
                ],
            },
        ),
        migrations.CreateModel(
            name='InventoryBalance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('quantity', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=18, verbose_name='Cantidad')),
                ('reserved_quantity', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=18, verbose_name='Reservado')),
                ('version', models.PositiveIntegerField(default=1, verbose_name='Versión')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='pharmastock.batch', verbose_name='Lote')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='pharmastock.location', verbose_name='Ubicación')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='balances', to='pharmastock.product', verbose_name='Producto')),
            ],
            options={
                'verbose_name': 'Saldo',
                'verbose_name_plural': 'Saldos',
                'indexes': [
                    models.Index(fields=['tenant_id', 'product'], name='ps_balance_product_idx'),
                    models.Index(fields=['tenant_id', 'location'], name='ps_balance_location_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'location', 'product', 'batch'), name='unique_balance_key'),
                    models.UniqueConstraint(condition=models.Q(('batch__isnull', True)), fields=('tenant_id', 'location', 'product'), name='unique_balance_key_unbatched'),
                    models.CheckConstraint(condition=models.Q(('quantity__gte', 0)), name='balance_quantity_non_negative'),
                    models.CheckConstraint(condition=models.Q(('reserved_quantity__gte', 0)), name='balance_reserved_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('number', models.CharField(max_length=40, verbose_name='Número')),
                ('number_year', models.PositiveIntegerField(verbose_name='Año')),
                ('type', models.CharField(choices=[('IN', 'Ingreso'), ('OUT', 'Salida'), ('TRANSFER', 'Transferencia'), ('ADJUSTMENT', 'Ajuste')], max_length=20, verbose_name='Tipo')),
                ('quantity', models.DecimalField(decimal_places=4, help_text='Siempre positiva, en unidades base', max_digits=18, verbose_name='Cantidad')),
                ('presentation_quantity', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True, verbose_name='Cantidad en presentación')),
                ('reference_type', models.CharField(blank=True, default='', max_length=40, verbose_name='Tipo de referencia')),
                ('reference_id', models.CharField(blank=True, default='', max_length=64, verbose_name='Referencia')),
                ('note', models.TextField(blank=True, default='', verbose_name='Nota')),
                ('created_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name='Fecha/Hora')),
                ('batch', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='pharmastock.batch', verbose_name='Lote')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Usuario')),
                ('from_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='outgoing_movements', to='pharmastock.location', verbose_name='Desde')),
                ('presentation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='pharmastock.productpresentation', verbose_name='Presentación')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='movements', to='pharmastock.product', verbose_name='Producto')),
                ('to_location', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='incoming_movements', to='pharmastock.location', verbose_name='Hacia')),
            ],
            options={
                'verbose_name': 'Movimiento',
                'verbose_name_plural': 'Movimientos',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['tenant_id', 'product', 'created_at'], name='ps_move_product_created_idx'),
                    models.Index(fields=['tenant_id', 'reference_type', 'reference_id'], name='ps_move_reference_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'number'), name='unique_movement_number_per_tenant'),
                    models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='movement_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SalesOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('number', models.CharField(max_length=40, verbose_name='Número')),
                ('number_year', models.PositiveIntegerField(verbose_name='Año')),
                ('customer_id', models.CharField(blank=True, default='', max_length=64, verbose_name='Cliente')),
                ('customer_name', models.CharField(blank=True, default='', max_length=200, verbose_name='Nombre del cliente')),
                ('customer_city', models.CharField(blank=True, default='', max_length=100, verbose_name='Ciudad del cliente')),
                ('delivery_city', models.CharField(blank=True, default='', max_length=100, verbose_name='Ciudad de entrega')),
                ('status', models.CharField(choices=[('DRAFT', 'Borrador'), ('CONFIRMED', 'Confirmado'), ('FULFILLED', 'Entregado'), ('CANCELLED', 'Anulado')], db_index=True, default='DRAFT', max_length=20, verbose_name='Estado')),
                ('version', models.PositiveIntegerField(default=1, verbose_name='Versión')),
                ('payment_mode', models.CharField(default='CASH', help_text='CASH o CREDIT_N (N días de crédito)', max_length=20, verbose_name='Forma de pago')),
                ('delivery_date', models.DateTimeField(blank=True, null=True, verbose_name='Fecha de entrega')),
                ('delivered_at', models.DateTimeField(blank=True, null=True, verbose_name='Entregado en')),
                ('paid_at', models.DateTimeField(blank=True, null=True, verbose_name='Pagado en')),
                ('note', models.TextField(blank=True, default='', verbose_name='Nota')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Orden de venta',
                'verbose_name_plural': 'Órdenes de venta',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('tenant_id', 'number'), name='unique_sales_order_number_per_tenant'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SalesOrderLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('presentation_quantity', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True, verbose_name='Cantidad en presentación')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=18, verbose_name='Cantidad')),
                ('unit_price', models.DecimalField(decimal_places=4, default=Decimal('0'), max_digits=18, verbose_name='Precio unitario')),
                ('batch', models.ForeignKey(blank=True, help_text='Vacío = se elige por FEFO', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to='pharmastock.batch', verbose_name='Lote')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='pharmastock.salesorder', verbose_name='Orden')),
                ('presentation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='pharmastock.productpresentation', verbose_name='Presentación')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='pharmastock.product', verbose_name='Producto')),
            ],
            options={
                'verbose_name': 'Línea de orden',
                'verbose_name_plural': 'Líneas de orden',
                'ordering': ['order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='SalesOrderReservation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('quantity', models.DecimalField(decimal_places=4, max_digits=18, verbose_name='Cantidad')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('released_at', models.DateTimeField(blank=True, db_index=True, help_text='Vacío = reserva activa', null=True, verbose_name='Liberada en')),
                ('balance', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='reservations', to='pharmastock.inventorybalance', verbose_name='Saldo')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('line', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='pharmastock.salesorderline', verbose_name='Línea')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='reservations', to='pharmastock.salesorder', verbose_name='Orden')),
            ],
            options={
                'verbose_name': 'Reserva',
                'verbose_name_plural': 'Reservas',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['order', 'released_at'], name='ps_resv_order_idx'),
                    models.Index(fields=['balance', 'released_at'], name='ps_resv_balance_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('released_at__isnull', True)), fields=('tenant_id', 'line', 'balance'), name='unique_active_reservation_per_line_balance'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovementRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('status', models.CharField(choices=[('OPEN', 'Abierta'), ('SENT', 'Enviada'), ('FULFILLED', 'Atendida'), ('CANCELLED', 'Cancelada')], db_index=True, default='OPEN', max_length=20, verbose_name='Estado')),
                ('requested_city', models.CharField(max_length=100, verbose_name='Ciudad solicitante')),
                ('requested_by', models.CharField(blank=True, default='', max_length=150, verbose_name='Solicitado por')),
                ('note', models.TextField(blank=True, default='', verbose_name='Nota')),
                ('fulfilled_at', models.DateTimeField(blank=True, null=True, verbose_name='Atendida en')),
                ('confirmation_status', models.CharField(choices=[('PENDING', 'Pendiente'), ('ACCEPTED', 'Aceptada'), ('REJECTED', 'Rechazada')], default='PENDING', max_length=20, verbose_name='Confirmación')),
                ('confirmed_at', models.DateTimeField(blank=True, null=True, verbose_name='Confirmada en')),
                ('confirmation_note', models.TextField(blank=True, default='', verbose_name='Nota de confirmación')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('confirmed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Confirmada por')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('fulfilled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Atendida por')),
                ('warehouse', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='movement_requests', to='pharmastock.warehouse', verbose_name='Almacén solicitante')),
            ],
            options={
                'verbose_name': 'Solicitud de movimiento',
                'verbose_name_plural': 'Solicitudes de movimiento',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['tenant_id', 'status', 'requested_city'], name='ps_request_status_city_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovementRequestItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('tenant_id', models.CharField(db_index=True, max_length=64, verbose_name='Tenant')),
                ('presentation_quantity', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True, verbose_name='Cantidad en presentación')),
                ('requested_quantity', models.DecimalField(decimal_places=4, max_digits=18, verbose_name='Cantidad solicitada')),
                ('remaining_quantity', models.DecimalField(decimal_places=4, max_digits=18, verbose_name='Cantidad pendiente')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('presentation', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='pharmastock.productpresentation', verbose_name='Presentación')),
                ('product', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='+', to='pharmastock.product', verbose_name='Producto')),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='pharmastock.stockmovementrequest', verbose_name='Solicitud')),
            ],
            options={
                'verbose_name': 'Ítem de solicitud',
                'verbose_name_plural': 'Ítems de solicitud',
                'ordering': ['created_at', 'id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('remaining_quantity__gte', 0)), name='request_item_remaining_non_negative'),
                ],
            },
        ),
    ]
