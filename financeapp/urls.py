from django.urls import path
from . import views

urlpatterns = [

    path('invoices/', views.list_invoices, name='list_invoices'),

    path('invoices/generate-for-project/', views.generate_invoice_for_project, name='generate_invoice_for_project'),

    path('invoices/<str:invoice_number>/send/', views.send_invoice, name='send_invoice'),

    path('invoices/<str:invoice_number>/pay/', views.pay_invoice, name='pay_invoice'),

    path('budget/breakdown/', views.budget_breakdown, name='budget_breakdown'),
]
