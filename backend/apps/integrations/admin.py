from django.contrib import admin
from .models import CommercePlatformIntegration


@admin.register(CommercePlatformIntegration)
class CommercePlatformIntegrationAdmin(admin.ModelAdmin):
    list_display = ['store', 'platform', 'shop_domain', 'status', 'updated_at']
    list_filter = ['platform', 'status']
    search_fields = ['shop_domain', 'store__name']
    exclude = ['access_token_encrypted']
