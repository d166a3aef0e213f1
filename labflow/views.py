"""
HTTP surface.

Each view resolves the actor, calls one service function and returns
projection / serializer output. Errors are raised as BaseAppException and
formatted by exception_handler.unified_exception_handler.
"""

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from . import access, invoicing, ledger, services, workflow
from .intake import (
    parse_case_payload,
    parse_doctor_payload,
    parse_material_payload,
    parse_quantity,
    parse_shipping_info,
)
from .projection import project_case, project_case_list
from .serializers import serialize_activity, serialize_case_material, serialize_doctor, serialize_material


class LabView(APIView):
    """Resolves request.user to an Actor before the handler runs."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        self.actor = access.resolve_actor(request.user)

    def case_response(self, case, status_code=status.HTTP_200_OK):
        return Response(project_case(case, self.actor.role), status=status_code)


class CaseListView(LabView):
    """GET /api/cases/ - list (filter, search, sort); POST - create"""

    def get(self, request):
        params = request.query_params
        cases = services.list_cases(
            self.actor,
            status=params.get('status'),
            search=params.get('q'),
            sort=params.get('sort', 'due'),
            direction=params.get('dir', 'asc'),
        )
        return Response({
            'cases': project_case_list(cases, self.actor.role, self.actor.doctor_id),
        })

    def post(self, request):
        fields = parse_case_payload(request.data)
        case = services.create_case(fields, actor=self.actor)
        return self.case_response(case, status.HTTP_201_CREATED)


class CaseDetailView(LabView):
    """GET / PATCH / DELETE /api/cases/<case_id>/"""

    def get(self, request, case_id):
        case = access.get_case_for(self.actor, case_id)
        body = project_case(case, self.actor.role)
        if self.actor.is_lab_staff:
            body['moves'] = workflow.available_moves(case)
        return Response(body)

    def patch(self, request, case_id):
        changes = parse_case_payload(request.data, partial=True)
        case = services.update_case(
            case_id,
            changes,
            shipping_info=parse_shipping_info(request.data),
            actor=self.actor,
        )
        return self.case_response(case)

    def delete(self, request, case_id):
        services.delete_case(case_id, actor=self.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CaseAdvanceView(LabView):
    """POST /api/cases/<case_id>/advance/ - body may carry {carrier, tracking_number}"""

    def post(self, request, case_id):
        case = access.get_case_for(self.actor, case_id)
        case = workflow.advance(case, shipping_info=parse_shipping_info(request.data), actor=self.actor)
        return self.case_response(case)


class CaseRetreatView(LabView):
    """POST /api/cases/<case_id>/retreat/"""

    def post(self, request, case_id):
        case = access.get_case_for(self.actor, case_id)
        case = workflow.retreat(case, actor=self.actor)
        return self.case_response(case)


class CaseInvoiceToggleView(LabView):
    """POST /api/cases/<case_id>/toggle-invoiced/"""

    def post(self, request, case_id):
        case = invoicing.toggle_invoiced(case_id, actor=self.actor)
        return self.case_response(case)


class CaseMaterialListView(LabView):
    """GET /api/cases/<case_id>/materials/ ; POST {material_id, quantity}"""

    def get(self, request, case_id):
        access.require_lab_staff(self.actor, 'view material usage')
        case = access.get_case_for(self.actor, case_id)
        links = ledger.case_materials(case)
        return Response({'materials': [serialize_case_material(link) for link in links]})

    def post(self, request, case_id):
        access.require_lab_staff(self.actor, 'record material usage')
        quantity = parse_quantity(request.data.get('quantity'))
        link = ledger.attach(case_id, request.data.get('material_id'), quantity, actor=self.actor)
        return Response(serialize_case_material(link), status=status.HTTP_201_CREATED)


class CaseMaterialDetailView(LabView):
    """DELETE /api/case-materials/<case_material_id>/ - no-op when already gone"""

    def delete(self, request, case_material_id):
        ledger.detach(case_material_id, actor=self.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CaseActivityView(LabView):
    """GET /api/cases/<case_id>/activity/"""

    def get(self, request, case_id):
        case = access.get_case_for(self.actor, case_id)
        entries = services.recent_activity(self.actor, case=case)
        return Response({'activity': [serialize_activity(e) for e in entries]})


class DoctorListView(LabView):
    """GET /api/doctors/ - lab staff, with case counts; POST - add a doctor"""

    def get(self, request):
        access.require_lab_staff(self.actor, 'view doctors')
        doctors = services.doctors_with_case_counts()
        return Response({'doctors': [serialize_doctor(d, d.total_cases) for d in doctors]})

    def post(self, request):
        access.require_lab_staff(self.actor, 'add doctors')
        doctor = services.create_doctor(parse_doctor_payload(request.data), actor=self.actor)
        return Response(serialize_doctor(doctor, case_count=0), status=status.HTTP_201_CREATED)


class DoctorDetailView(LabView):
    """PATCH /api/doctors/<doctor_id>/ - edit contact details; DELETE - only without cases"""

    def patch(self, request, doctor_id):
        access.require_lab_staff(self.actor, 'edit doctors')
        changes = parse_doctor_payload(request.data, partial=True)
        doctor = services.update_doctor(doctor_id, changes, actor=self.actor)
        return Response(serialize_doctor(doctor, case_count=doctor.cases.count()))

    def delete(self, request, doctor_id):
        services.delete_doctor(doctor_id, actor=self.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)


class DoctorRegistrableView(APIView):
    """GET /api/doctors/registrable/?email= - pre-check before sign-up"""

    permission_classes = [AllowAny]

    def get(self, request):
        return Response({'registrable': access.is_registrable_email(request.query_params.get('email'))})


class DoctorClaimView(APIView):
    """POST /api/doctors/claim/ {email} - link the signed-in user to their doctor record"""

    def post(self, request):
        doctor = access.claim_doctor_account(request.user, request.data.get('email'))
        return Response(serialize_doctor(doctor), status=status.HTTP_201_CREATED)


class InvoiceSummaryView(LabView):
    """GET /api/invoices/summary/ - admin only"""

    def get(self, request):
        access.require_admin(self.actor, 'view invoicing')
        totals = invoicing.invoice_totals()
        return Response({
            'totals': _money_row(totals),
            'by_month': [_money_row(row) for row in invoicing.invoice_totals_by_month()],
            'by_doctor': [_money_row(row) for row in invoicing.invoice_totals_by_doctor()],
        })


class MaterialListView(LabView):
    """GET /api/materials/?low_stock=1; POST - add an inventory item"""

    def get(self, request):
        low_stock = request.query_params.get('low_stock') in ('1', 'true')
        materials = services.list_materials(self.actor, low_stock=low_stock)
        return Response({'materials': [serialize_material(m) for m in materials]})

    def post(self, request):
        access.require_lab_staff(self.actor, 'add materials')
        material = services.create_material(parse_material_payload(request.data), actor=self.actor)
        return Response(serialize_material(material), status=status.HTTP_201_CREATED)


class MaterialDetailView(LabView):
    """PATCH /api/materials/<material_id>/ - edit, including stock corrections"""

    def patch(self, request, material_id):
        access.require_lab_staff(self.actor, 'edit materials')
        changes = parse_material_payload(request.data, partial=True)
        material = services.update_material(material_id, changes, actor=self.actor)
        return Response(serialize_material(material))


class ShipmentListView(LabView):
    """GET /api/shipments/?days=N"""

    def get(self, request):
        days = request.query_params.get('days')
        cases = services.list_shipments(self.actor, days=int(days) if days and days.isdigit() else None)
        return Response({'shipments': project_case_list(cases, self.actor.role, self.actor.doctor_id)})


def _money_row(row):
    return {k: str(v) if k in ('pending', 'invoiced') else v for k, v in row.items()}
