from django.urls import path

from . import views

app_name = 'transfers'

urlpatterns = [
    path('', views.TransferCreateView.as_view(), name='create'),
    path('pending/', views.PendingTransfersView.as_view(), name='pending'),
    path('history/', views.TransferHistoryView.as_view(), name='history'),
    path('<int:pk>/', views.TransferGroupView.as_view(), name='group'),
    path('<int:pk>/approve/', views.TransferApproveView.as_view(), name='approve'),
    path('<int:pk>/decline/', views.TransferDeclineView.as_view(), name='decline'),
]
