"""
URL configuration for riofish project.

Each app exposes a small JSON surface under its own prefix; the admin covers
day-to-day record maintenance.
"""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path('admin/', admin.site.urls),
    path('storage/', include('storage.urls')),
    path('inventory/', include('inventory.urls')),
    path('transfers/', include('transfers.urls')),
]
