"""
Integration tests: real HTTP requests against the DRF views.

Each request goes through
  HTTP Request -> urls.py -> View -> service -> ORM -> DB -> Response

and is checked for status_code and, on failure, the unified error body
{type, code, message, detail?}.
"""
import pytest
from decimal import Decimal

from labflow.models import ActivityLogEntry, Case, Doctor, Material
from tests.conftest import CaseFactory, DoctorFactory, MaterialFactory, UserFactory


@pytest.fixture
def as_admin(api_client, admin_member):
    api_client.force_authenticate(admin_member.user)
    return api_client


@pytest.fixture
def as_tech(api_client, tech_member):
    api_client.force_authenticate(tech_member.user)
    return api_client


@pytest.fixture
def as_doctor(api_client, linked_doctor):
    api_client.force_authenticate(linked_doctor.auth_user)
    return api_client


# ===================================================================
# Cases
# ===================================================================

@pytest.mark.django_db
class TestCaseCreate:

    def test_admin_creates_case(self, as_admin):
        doctor = DoctorFactory()
        response = as_admin.post('/api/cases/', {
            'patient': 'Jane Roe',
            'doctor_id': str(doctor.id),
            'due': '2026-12-01',
            'type': 'E.max Crown',
            'price': '180',
        }, format='json')

        body = response.json()
        assert response.status_code == 201
        assert 'type' in body and body['type'] == 'E.max Crown'
        assert body['status'] == 'received'
        assert body['price'] == '180.00'
        assert Case.objects.count() == 1

    def test_validation_errors(self, as_admin):
        response = as_admin.post('/api/cases/', {'type': 'Spaceship'}, format='json')

        body = response.json()
        assert response.status_code == 400
        assert body['type'] == 'validation_error'
        fields = {e['field'] for e in body['detail']['errors']}
        assert {'patient', 'doctor_id', 'due', 'type'} <= fields

    def test_price_too_large_for_column(self, as_admin):
        response = as_admin.post('/api/cases/', {
            'patient': 'Jane Roe',
            'doctor_id': str(DoctorFactory().id),
            'due': '2026-12-01',
            'price': '123456789012.00',
        }, format='json')

        body = response.json()
        assert response.status_code == 400
        assert body['type'] == 'validation_error'
        assert [e['field'] for e in body['detail']['errors']] == ['price']
        assert Case.objects.count() == 0

    def test_doctor_cannot_create(self, as_doctor, linked_doctor):
        response = as_doctor.post('/api/cases/', {
            'patient': 'X', 'doctor_id': str(linked_doctor.id), 'due': '2026-12-01',
        }, format='json')

        assert response.status_code == 403
        assert response.json()['code'] == 'LAB_STAFF_ONLY'

    def test_unauthenticated(self, api_client):
        response = api_client.get('/api/cases/')
        assert response.status_code in (401, 403)


@pytest.mark.django_db
class TestCaseViews:

    def test_doctor_list_scoped_and_trimmed(self, as_doctor, linked_doctor):
        mine = CaseFactory(doctor=linked_doctor, price=Decimal('300'))
        CaseFactory()

        response = as_doctor.get('/api/cases/')

        rows = response.json()['cases']
        assert [r['id'] for r in rows] == [str(mine.id)]
        assert 'price' not in rows[0]
        assert 'invoiced' not in rows[0]

    def test_doctor_blocked_from_other_doctors_case(self, as_doctor):
        other = CaseFactory()

        response = as_doctor.get(f'/api/cases/{other.id}/')

        assert response.status_code == 403
        assert response.json()['code'] == 'CASE_OUT_OF_SCOPE'

    def test_tech_detail_has_moves_but_no_price(self, as_tech):
        case = CaseFactory(status='quality_check')

        body = as_tech.get(f'/api/cases/{case.id}/').json()

        assert body['moves'] == {'next': 'ready', 'back': 'in_progress'}
        assert 'price' not in body

    def test_list_filter_and_search(self, as_admin):
        CaseFactory(patient='Alpha', status='ready')
        CaseFactory(patient='Beta', status='ready')
        CaseFactory(patient='Alpha Two', status='received')

        rows = as_admin.get('/api/cases/', {'status': 'ready', 'q': 'alp'}).json()['cases']

        assert [r['patient'] for r in rows] == ['Alpha']

    def test_missing_case(self, as_admin):
        response = as_admin.get('/api/cases/00000000-0000-0000-0000-000000000000/')

        assert response.status_code == 404
        assert response.json()['type'] == 'not_found'

    def test_patch_and_delete(self, as_admin):
        case = CaseFactory()

        response = as_admin.patch(f'/api/cases/{case.id}/', {'shade': 'D3', 'rush': True}, format='json')
        assert response.status_code == 200
        assert response.json()['shade'] == 'D3'

        response = as_admin.delete(f'/api/cases/{case.id}/')
        assert response.status_code == 204
        assert not Case.objects.filter(id=case.id).exists()


@pytest.mark.django_db
class TestStatusEndpoints:

    def test_advance_to_shipped_requires_carrier(self, as_tech):
        case = CaseFactory(status='ready')

        response = as_tech.post(f'/api/cases/{case.id}/advance/', {}, format='json')
        assert response.status_code == 400
        assert response.json()['code'] == 'SHIPPING_INFO_REQUIRED'

        response = as_tech.post(
            f'/api/cases/{case.id}/advance/', {'carrier': 'UPS', 'tracking_number': '1Z'}, format='json',
        )
        body = response.json()
        assert response.status_code == 200
        assert body['status'] == 'shipped'
        assert body['shipping_carrier'] == 'UPS'
        assert body['shipped_at'] is not None

    def test_advance_from_shipped_conflicts(self, as_tech):
        case = CaseFactory(status='ready')
        as_tech.post(f'/api/cases/{case.id}/advance/', {'carrier': 'Hand Delivery'}, format='json')

        response = as_tech.post(f'/api/cases/{case.id}/advance/', {}, format='json')

        assert response.status_code == 409
        assert response.json()['code'] == 'INVALID_TRANSITION'

    def test_retreat_from_received_conflicts(self, as_tech):
        case = CaseFactory()

        response = as_tech.post(f'/api/cases/{case.id}/retreat/')

        assert response.status_code == 409

    def test_doctor_cannot_move_own_case(self, as_doctor, linked_doctor):
        case = CaseFactory(doctor=linked_doctor)

        response = as_doctor.post(f'/api/cases/{case.id}/advance/', {}, format='json')

        assert response.status_code == 403
        case.refresh_from_db()
        assert case.status == 'received'

    def test_activity_feed(self, as_tech):
        case = CaseFactory()
        as_tech.post(f'/api/cases/{case.id}/advance/', {}, format='json')

        rows = as_tech.get(f'/api/cases/{case.id}/activity/').json()['activity']

        assert rows[0]['action'] == 'changed status from Received to In Progress'
        assert rows[0]['case_number'] == case.case_number


@pytest.mark.django_db
class TestInvoicingEndpoints:

    def test_admin_toggles_and_reads_summary(self, as_admin):
        case = CaseFactory(price=Decimal('120'))

        response = as_admin.post(f'/api/cases/{case.id}/toggle-invoiced/')
        assert response.status_code == 200
        assert response.json()['invoiced'] is True

        summary = as_admin.get('/api/invoices/summary/').json()
        assert summary['totals']['invoiced'] == '120.00'
        assert summary['totals']['pending'] == '0.00'
        assert summary['by_doctor'][0]['doctor_id'] == str(case.doctor_id)

    def test_tech_refused(self, as_tech):
        case = CaseFactory()

        assert as_tech.post(f'/api/cases/{case.id}/toggle-invoiced/').status_code == 403
        assert as_tech.get('/api/invoices/summary/').status_code == 403
        assert ActivityLogEntry.objects.count() == 0


@pytest.mark.django_db
class TestMaterialEndpoints:

    def test_attach_then_detach(self, as_tech):
        case = CaseFactory()
        material = MaterialFactory(quantity=Decimal('5'))

        response = as_tech.post(
            f'/api/cases/{case.id}/materials/', {'material_id': str(material.id), 'quantity': '2'}, format='json',
        )
        assert response.status_code == 201
        link_id = response.json()['id']
        assert Material.objects.get(id=material.id).quantity == Decimal('3.00')

        listed = as_tech.get(f'/api/cases/{case.id}/materials/').json()['materials']
        assert [m['id'] for m in listed] == [link_id]

        assert as_tech.delete(f'/api/case-materials/{link_id}/').status_code == 204
        assert as_tech.delete(f'/api/case-materials/{link_id}/').status_code == 204
        assert Material.objects.get(id=material.id).quantity == Decimal('5.00')

    def test_insufficient_stock(self, as_tech):
        case = CaseFactory()
        material = MaterialFactory(quantity=Decimal('1'))

        response = as_tech.post(
            f'/api/cases/{case.id}/materials/', {'material_id': str(material.id), 'quantity': '3'}, format='json',
        )

        assert response.status_code == 409
        assert response.json()['code'] == 'INSUFFICIENT_STOCK'

    def test_low_stock_listing(self, as_tech):
        MaterialFactory(name='Wax', quantity=Decimal('1'), reorder_level=Decimal('5'))
        MaterialFactory(name='Resin', quantity=Decimal('50'), reorder_level=Decimal('5'))

        rows = as_tech.get('/api/materials/', {'low_stock': '1'}).json()['materials']

        assert [r['name'] for r in rows] == ['Wax']
        assert rows[0]['needs_reorder'] is True


@pytest.mark.django_db
class TestDoctorEndpoints:

    def test_delete_blocked_with_cases(self, as_tech):
        doctor = DoctorFactory(name='Dr. Busy')
        CaseFactory(doctor=doctor)

        response = as_tech.delete(f'/api/doctors/{doctor.id}/')

        assert response.status_code == 409
        assert response.json()['message'].startswith('Cannot delete Dr. Busy: they have 1 case linked')
        assert Doctor.objects.filter(id=doctor.id).exists()

    def test_list_with_counts(self, as_tech):
        doctor = DoctorFactory(name='Dr. Count')
        CaseFactory(doctor=doctor)

        rows = as_tech.get('/api/doctors/').json()['doctors']

        assert rows[0]['name'] == 'Dr. Count'
        assert rows[0]['total_cases'] == 1

    def test_registration_claim(self, api_client):
        DoctorFactory(email='new@clinic.example.com')
        user = UserFactory()

        check = api_client.get('/api/doctors/registrable/', {'email': 'new@clinic.example.com'})
        assert check.json() == {'registrable': True}

        api_client.force_authenticate(user)
        first = api_client.post('/api/doctors/claim/', {'email': 'new@clinic.example.com'}, format='json')
        assert first.status_code == 201
        assert first.json()['portal_linked'] is True

        second = api_client.post('/api/doctors/claim/', {'email': 'new@clinic.example.com'}, format='json')
        assert second.status_code == 409


@pytest.mark.django_db
class TestShipmentsEndpoint:

    def test_lists_shipped_cases(self, as_tech):
        case = CaseFactory(status='ready')
        as_tech.post(f'/api/cases/{case.id}/advance/', {'carrier': 'UPS'}, format='json')
        CaseFactory(status='ready')

        rows = as_tech.get('/api/shipments/', {'days': '7'}).json()['shipments']

        assert [r['id'] for r in rows] == [str(case.id)]


@pytest.mark.django_db
class TestDoctorAndMaterialRecords:

    def test_tech_adds_and_edits_doctor(self, as_tech):
        response = as_tech.post('/api/doctors/', {
            'name': 'Dr. Sarah Chen', 'practice': 'Bright Smile Dental', 'email': 'sarah@bright.example.com',
        }, format='json')

        body = response.json()
        assert response.status_code == 201
        assert body['total_cases'] == 0
        assert body['portal_linked'] is False

        response = as_tech.patch(f"/api/doctors/{body['id']}/", {'phone': '555-0142'}, format='json')
        assert response.status_code == 200
        assert response.json()['phone'] == '555-0142'
        assert Doctor.objects.get(id=body['id']).email == 'sarah@bright.example.com'

    def test_doctor_validation_errors(self, as_tech):
        response = as_tech.post('/api/doctors/', {'name': ''}, format='json')

        assert response.status_code == 400
        assert {e['field'] for e in response.json()['detail']['errors']} == {'name', 'practice'}

    def test_doctor_cannot_manage_records(self, as_doctor, linked_doctor):
        assert as_doctor.post('/api/doctors/', {'name': 'X', 'practice': 'Y'}, format='json').status_code == 403
        response = as_doctor.patch(f'/api/doctors/{linked_doctor.id}/', {'phone': '1'}, format='json')
        assert response.status_code == 403
        assert as_doctor.post('/api/materials/', {'name': 'Wax'}, format='json').status_code == 403

    def test_tech_adds_and_corrects_material(self, as_tech):
        response = as_tech.post('/api/materials/', {
            'name': 'Zirconia Disc 98mm', 'category': 'Zirconia', 'unit': 'discs',
            'quantity': '12', 'reorder_level': '4', 'unit_cost': '85',
        }, format='json')

        body = response.json()
        assert response.status_code == 201
        assert body['quantity'] == '12.00'
        assert body['unit_cost'] == '85.00'

        response = as_tech.patch(f"/api/materials/{body['id']}/", {'quantity': '3'}, format='json')
        assert response.status_code == 200
        assert response.json()['needs_reorder'] is True
        assert Material.objects.get(id=body['id']).quantity == Decimal('3.00')

    def test_edit_missing_material(self, as_tech):
        response = as_tech.patch('/api/materials/00000000-0000-0000-0000-000000000000/', {'name': 'x'}, format='json')

        assert response.status_code == 404
        assert response.json()['code'] == 'MATERIAL_NOT_FOUND'
