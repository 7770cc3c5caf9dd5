"""
Order URL patterns.
"""
from django.urls import path
from apps.orders import views

app_name = 'orders'

urlpatterns = [
    # Dashboard
    path('', views.order_list, name='list'),
    path('<uuid:pk>/', views.order_detail, name='detail'),
    path('<uuid:pk>/status/', views.change_status, name='status'),
    path('<uuid:pk>/confirm/', views.confirm_order, name='confirm'),
    path('<uuid:pk>/history/', views.order_history, name='history'),

    # Public courier / customer surface
    path('delivery/<str:token>/', views.delivery_lookup, name='delivery'),
    path('delivery/<str:token>/confirm/', views.delivery_confirm, name='delivery-confirm'),
    path('delivery/<str:token>/fail/', views.delivery_fail, name='delivery-fail'),
    path('delivery/<str:token>/retry/', views.delivery_retry, name='delivery-retry'),
    path('<uuid:pk>/rate-delivery/', views.rate_delivery, name='rate-delivery'),
    path('<uuid:pk>/cancel-delivery/', views.cancel_delivery, name='cancel-delivery'),

    # Incidents
    path('incidents/', views.incident_list, name='incident-list'),
    path('incidents/<uuid:pk>/retries/', views.schedule_retry, name='incident-retries'),
    path('incidents/<uuid:pk>/resolve/', views.resolve_incident, name='incident-resolve'),
]
