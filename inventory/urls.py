from django.urls import path

from . import views

app_name = 'inventory'

urlpatterns = [
    path('', views.InventoryView.as_view(), name='inventory'),
    path('capacity/', views.CapacityView.as_view(), name='capacity'),
    path('capacity/<int:pk>/', views.CapacityView.as_view(), name='location_capacity'),
    path('locations/<int:pk>/sizes/<int:size_class>/', views.AvailableStockView.as_view(), name='available_stock'),
    path('transfer-destinations/', views.TransferDestinationsView.as_view(), name='transfer_destinations'),
    path('oldest/', views.OldestBatchesView.as_view(), name='oldest_batches'),
]
