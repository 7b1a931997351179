"""
Pharmastock Admin.

Master data (warehouses, locations, products, presentations) is editable.
Ledger data only changes through the Stock service, so balances,
movements, reservations, orders and movement requests are read-only.
Batches get a QC "release" action.
"""

import logging

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from pharmastock.exceptions import StockError
from pharmastock.models import (
    Batch,
    BatchStatus,
    InventoryBalance,
    Location,
    Product,
    ProductPresentation,
    SalesOrder,
    SalesOrderLine,
    SalesOrderReservation,
    StockMovement,
    StockMovementRequest,
    StockMovementRequestItem,
    Warehouse,
)

logger = logging.getLogger('pharmastock')


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# =========================================================================
# MASTER DATA (editable)
# =========================================================================

class LocationInline(admin.TabularInline):
    model = Location
    extra = 0
    fields = ['tenant_id', 'code', 'name', 'is_active']


@admin.register(Warehouse)
class WarehouseAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'city', 'tenant_id', 'is_active']
    list_filter = ['is_active', 'city']
    search_fields = ['code', 'name', 'city']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [LocationInline]


@admin.register(Location)
class LocationAdmin(admin.ModelAdmin):
    list_display = ['__str__', 'name', 'tenant_id', 'is_active']
    list_filter = ['is_active', 'warehouse']
    search_fields = ['code', 'name', 'warehouse__code']


class PresentationInline(admin.TabularInline):
    model = ProductPresentation
    extra = 0
    fields = ['tenant_id', 'name', 'units_per_presentation', 'is_default', 'sort_order', 'is_active']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'generic_name', 'tenant_id', 'is_active']
    list_filter = ['is_active']
    search_fields = ['sku', 'name', 'generic_name']
    inlines = [PresentationInline]


@admin.register(ProductPresentation)
class ProductPresentationAdmin(admin.ModelAdmin):
    list_display = ['name', 'product', 'units_per_presentation', 'is_default', 'is_active']
    list_filter = ['is_default', 'is_active']
    search_fields = ['name', 'product__sku', 'product__name']


# =========================================================================
# BATCH ADMIN
# =========================================================================

@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    """Batch admin: lot traceability with QC release."""

    list_display = ['batch_number', 'product', 'expires_at', 'status', 'is_expired_display', 'opened_at']
    list_filter = ['status', 'expires_at']
    search_fields = ['batch_number', 'product__sku']
    readonly_fields = ['status', 'released_at', 'released_by', 'opened_at', 'opened_by',
                       'created_at', 'created_by']
    actions = ['release_batches']

    @admin.display(description=_('¿Vencido?'), boolean=True)
    def is_expired_display(self, obj):
        return obj.is_expired

    @admin.action(description=_('Liberar lotes seleccionados'))
    def release_batches(self, request, queryset):
        from pharmastock import stock

        count = 0
        for batch in queryset.filter(status=BatchStatus.QUARANTINE):
            try:
                stock.release_batch(batch.tenant_id, batch.pk, user=request.user)
                count += 1
            except StockError as exc:
                logger.warning("release_batches: failed to release %s: %s", batch.pk, exc.code)

        self.message_user(request, _('{count} lote(s) liberado(s).').format(count=count))


# =========================================================================
# LEDGER (read-only)
# =========================================================================

@admin.register(InventoryBalance)
class InventoryBalanceAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Balance admin: read-only. Stock only changes via Stock service."""

    list_display = ['product', 'location', 'batch', 'quantity', 'reserved_quantity',
                    'available_display', 'version', 'updated_at']
    list_filter = ['location__warehouse', 'location']
    search_fields = ['product__sku', 'batch__batch_number']

    @admin.display(description=_('Disponible'))
    def available_display(self, obj):
        return obj.available


@admin.register(StockMovement)
class StockMovementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Movement admin: immutable ledger."""

    list_display = ['number', 'type', 'product', 'batch', 'from_location', 'to_location',
                    'quantity', 'reference_type', 'reference_id', 'created_at']
    list_filter = ['type', 'reference_type', 'created_at']
    search_fields = ['number', 'reference_id', 'product__sku']
    date_hierarchy = 'created_at'


@admin.register(SalesOrderReservation)
class SalesOrderReservationAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['order', 'line', 'balance', 'quantity', 'created_at', 'released_at']
    list_filter = ['released_at']
    search_fields = ['order__number']


class SalesOrderLineInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SalesOrderLine
    extra = 0
    fields = ['product', 'batch', 'presentation', 'presentation_quantity', 'quantity', 'unit_price']


@admin.register(SalesOrder)
class SalesOrderAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['number', 'customer_name', 'status', 'payment_mode', 'delivered_at', 'paid_at']
    list_filter = ['status', 'payment_mode']
    search_fields = ['number', 'customer_name', 'customer_id']
    inlines = [SalesOrderLineInline]


class MovementRequestItemInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = StockMovementRequestItem
    extra = 0
    fields = ['product', 'presentation', 'presentation_quantity', 'requested_quantity', 'remaining_quantity']


@admin.register(StockMovementRequest)
class StockMovementRequestAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ['id', 'requested_city', 'warehouse', 'status', 'confirmation_status',
                    'created_at', 'fulfilled_at']
    list_filter = ['status', 'confirmation_status', 'requested_city']
    search_fields = ['requested_city', 'requested_by']
    inlines = [MovementRequestItemInline]
