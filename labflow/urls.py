from django.urls import path

from .views import (
    CaseActivityView,
    CaseAdvanceView,
    CaseDetailView,
    CaseInvoiceToggleView,
    CaseListView,
    CaseMaterialDetailView,
    CaseMaterialListView,
    CaseRetreatView,
    DoctorClaimView,
    DoctorDetailView,
    DoctorListView,
    DoctorRegistrableView,
    InvoiceSummaryView,
    MaterialDetailView,
    MaterialListView,
    ShipmentListView,
)

urlpatterns = [
    path('cases/', CaseListView.as_view(), name='case-list'),
    path('cases/<uuid:case_id>/', CaseDetailView.as_view(), name='case-detail'),
    path('cases/<uuid:case_id>/advance/', CaseAdvanceView.as_view(), name='case-advance'),
    path('cases/<uuid:case_id>/retreat/', CaseRetreatView.as_view(), name='case-retreat'),
    path('cases/<uuid:case_id>/toggle-invoiced/', CaseInvoiceToggleView.as_view(), name='case-toggle-invoiced'),
    path('cases/<uuid:case_id>/materials/', CaseMaterialListView.as_view(), name='case-materials'),
    path('cases/<uuid:case_id>/activity/', CaseActivityView.as_view(), name='case-activity'),
    path('case-materials/<uuid:case_material_id>/', CaseMaterialDetailView.as_view(), name='case-material-detail'),
    path('doctors/', DoctorListView.as_view(), name='doctor-list'),
    path('doctors/registrable/', DoctorRegistrableView.as_view(), name='doctor-registrable'),
    path('doctors/claim/', DoctorClaimView.as_view(), name='doctor-claim'),
    path('doctors/<uuid:doctor_id>/', DoctorDetailView.as_view(), name='doctor-detail'),
    path('materials/', MaterialListView.as_view(), name='material-list'),
    path('materials/<uuid:material_id>/', MaterialDetailView.as_view(), name='material-detail'),
    path('invoices/summary/', InvoiceSummaryView.as_view(), name='invoice-summary'),
    path('shipments/', ShipmentListView.as_view(), name='shipment-list'),
]
