from django.contrib import admin
from .models import Carrier


@admin.register(Carrier)
class CarrierAdmin(admin.ModelAdmin):
    list_display = ['name', 'store', 'phone', 'is_active', 'created_at']
    list_filter = ['is_active', 'store']
    search_fields = ['name', 'phone']
