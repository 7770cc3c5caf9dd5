from django.contrib import admin
from .models import Product, ProductVariant, InventoryMovement


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'store', 'sku', 'price', 'stock', 'is_active']
    list_filter = ['is_active', 'store']
    search_fields = ['name', 'sku']
    inlines = [ProductVariantInline]


@admin.register(InventoryMovement)
class InventoryMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'variant', 'movement_type', 'quantity', 'stock_before', 'stock_after', 'order_id', 'created_at']
    list_filter = ['movement_type', 'store']
    search_fields = ['product__name', 'order_id']
    readonly_fields = [f.name for f in InventoryMovement._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
