"""
URL configuration for gigboard_hub project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.1/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include
from drf_yasg.views import get_schema_view
from drf_yasg import openapi
from rest_framework import permissions


schema_view = get_schema_view(
   openapi.Info(
      title="Gigboard API",
      default_version='v1',
      description="API documentation for the Gigboard freelance marketplace",
      license=openapi.License(name="BSD License"),
   ),
   public=True,
   permission_classes=[permissions.AllowAny],
)

# API URL routing
urlpatterns = [
    path('api/', include('core.urls')),
    path('api/client/', include('client.urls')),
    path('api/finance/', include('financeapp.urls')),
    path('api/freelancer/', include('freelancer.urls')),
    path('admin/', admin.site.urls),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='swagger-docs'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='redoc-docs'),
]
