from django.urls import path

from . import views

app_name = 'storage'

urlpatterns = [
    path('locations/', views.LocationListView.as_view(), name='location_list'),
    path('locations/<int:pk>/', views.LocationDetailView.as_view(), name='location_detail'),
]
