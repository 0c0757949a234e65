"""
Tests for vehicle entry, exit and payment.
"""
import io
import os
import pytest
from datetime import datetime, timedelta

from errors import InvalidState
from models import (
    db, EmpleadoGarage, Garage, Parking, ParkingPago, Subscription, SubscriptionPlan, Vehicle,
    ACTIVA, COMPLETADA, EFECTIVO, TRANSFERENCIA, ROLE_EMPLOYEE, ROLE_USER,
)
from repositories import ParkingRepository
from storage import Bucket, PARKING_PAYMENTS, PARKING_PHOTOS


def _photo(name='foto.jpg', data=b'jpeg-bytes'):
    return (io.BytesIO(data), name)


class TestEntry:
    """Tests for POST /api/parkings/entry."""

    def test_entry_creates_active_parking_and_ticket(self, client, garage, vehicle, rate, employee, employee_headers):
        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage,
            'plate': ' abc123 ',
        }, headers=employee_headers)

        assert response.status_code == 201
        data = response.get_json()
        parking = data['parking']
        assert parking['estado'] == ACTIVA
        assert parking['tipo'] == 'entrada'
        assert parking['rate_id'] == rate.id
        assert parking['vehicle_id'] == vehicle.id
        assert parking['created_by_user_id'] == employee.id

        ticket = data['ticket']
        assert ticket['plate'] == 'ABC123'
        assert ticket['parking_id'] == parking['id']
        assert ticket['garage'] == garage.id_garage
        qr = client.get(ticket['qr_url'])
        assert qr.status_code == 200
        assert qr.data.startswith(b'\x89PNG')

    def test_entry_with_photos(self, client, garage, vehicle, rate, employee_headers):
        response = client.post('/api/parkings/entry', data={
            'garage_id': garage.id_garage,
            'plate': 'ABC123',
            'fotos': [_photo('a.jpg', b'a'), _photo('b.jpg', b'b')],
        }, headers=employee_headers, content_type='multipart/form-data')

        assert response.status_code == 201
        fotos = response.get_json()['parking']['fotos_entrada']
        assert len(fotos) == 2
        assert all(url.startswith('/storage/parking_photos/parking/') for url in fotos)
        assert client.get(fotos[1]).data == b'b'

    def test_entry_without_rate_still_registers(self, client, garage, vehicle, employee_headers):
        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'ABC123',
        }, headers=employee_headers)
        assert response.status_code == 201
        assert response.get_json()['parking']['rate_id'] is None

    def test_unknown_plate(self, client, garage, employee_headers):
        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'ZZZ999',
        }, headers=employee_headers)
        assert response.status_code == 404

    def test_vehicle_already_inside(self, client, garage, active_parking, employee_headers):
        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'ABC123',
        }, headers=employee_headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'El vehículo ya está dentro'

    def test_full_garage_refuses_entry(self, client, garage, driver, active_parking, employee_headers):
        garage.capacidad_total = 1
        db.session.add(Vehicle(user_id=driver.id, plate='XYZ789'))
        db.session.commit()

        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'XYZ789',
        }, headers=employee_headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'El garage está lleno'

    def test_missing_fields(self, client, garage, employee_headers):
        response = client.post('/api/parkings/entry', json={'garage_id': garage.id_garage}, headers=employee_headers)
        assert response.status_code == 400

    def test_employee_of_other_garage_is_forbidden(self, client, garage, vehicle, owner, make_user, login):
        other = Garage(nombre='Otro', capacidad_total=3, user_id=owner.id)
        db.session.add(other)
        db.session.commit()
        outsider = make_user('Ajeno', roles=(ROLE_USER, ROLE_EMPLOYEE))
        db.session.add(EmpleadoGarage(garage_id=other.id_garage, empleado_id=outsider.id))
        db.session.commit()

        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'ABC123',
        }, headers=login(outsider))
        assert response.status_code == 403

    def test_driver_cannot_register_entries(self, client, garage, vehicle, driver_headers):
        response = client.post('/api/parkings/entry', json={
            'garage_id': garage.id_garage, 'plate': 'ABC123',
        }, headers=driver_headers)
        assert response.status_code == 403


class TestExit:
    """Tests for the exit preview and confirmation."""

    def test_preview_does_not_close(self, client, active_parking, employee_headers):
        response = client.get(f'/api/parkings/{active_parking.id}/preview', headers=employee_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['total'] == 6.0
        assert 2.49 <= data['duration_hours'] <= 2.6
        assert Parking.query.get(active_parking.id).estado == ACTIVA

    def test_subscriber_pays_special_rate(self, client, active_parking, driver, garage, employee_headers):
        plan = SubscriptionPlan.query.first()
        db.session.add(Subscription(user_id=driver.id, garage_id=garage.id_garage, plan_id=plan.id))
        db.session.commit()

        data = client.get(f'/api/parkings/{active_parking.id}/preview', headers=employee_headers).get_json()
        assert data['total'] == 3.0

    def test_exit_without_payment(self, client, active_parking, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit', json={}, headers=employee_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['estado'] == COMPLETADA
        assert data['total'] == 6.0
        assert data['pagado'] is False
        assert data['hora_salida'] is not None

    def test_exit_is_recorded_once(self, client, active_parking, employee_headers):
        client.post(f'/api/parkings/{active_parking.id}/exit', json={}, headers=employee_headers)
        first_exit = Parking.query.get(active_parking.id).hora_salida

        response = client.post(f'/api/parkings/{active_parking.id}/exit', json={}, headers=employee_headers)
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Session already closed'
        assert Parking.query.get(active_parking.id).hora_salida == first_exit

    def test_exit_before_entry_is_rejected(self, client, active_parking, employee_headers):
        early = (active_parking.hora_entrada - timedelta(hours=1)).isoformat()
        response = client.post(f'/api/parkings/{active_parking.id}/exit',
                               json={'hora_salida': early}, headers=employee_headers)
        assert response.status_code == 400
        assert Parking.query.get(active_parking.id).estado == ACTIVA

    def test_exit_of_unknown_parking(self, client, employee_headers):
        response = client.post('/api/parkings/missing/exit', json={}, headers=employee_headers)
        assert response.status_code == 404


class TestExitWithPayment:
    """Tests for POST /api/parkings/<id>/exit-payment."""

    def test_cash_payment(self, client, active_parking, employee, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit-payment', data={
            'metodo_pago': EFECTIVO,
            'fotos': [_photo()],
        }, headers=employee_headers, content_type='multipart/form-data')

        assert response.status_code == 200
        data = response.get_json()
        assert data['pagado'] is True
        assert data['estado'] == COMPLETADA
        assert len(data['fotos_salida']) == 1

        pago = ParkingPago.query.filter_by(parking_id=active_parking.id).one()
        assert pago.metodo == EFECTIVO
        assert pago.monto == 6.0
        assert pago.empleado_id == employee.id
        assert pago.comprobante_url is None

    def test_transfer_stores_receipt(self, client, active_parking, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit-payment', data={
            'metodo_pago': TRANSFERENCIA,
            'fotos': [_photo()],
            'comprobante': _photo('recibo.jpg', b'recibo'),
        }, headers=employee_headers, content_type='multipart/form-data')

        assert response.status_code == 200
        pago = ParkingPago.query.filter_by(parking_id=active_parking.id).one()
        assert pago.comprobante_url.startswith('/storage/parking_payments/payments/')
        assert client.get(pago.comprobante_url).data == b'recibo'

    def test_transfer_without_receipt(self, client, active_parking, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit-payment', data={
            'metodo_pago': TRANSFERENCIA,
            'fotos': [_photo()],
        }, headers=employee_headers, content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Debe adjuntar comprobante de transferencia'
        assert Parking.query.get(active_parking.id).estado == ACTIVA

    def test_exit_photo_is_required(self, client, active_parking, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit-payment', data={
            'metodo_pago': EFECTIVO,
        }, headers=employee_headers, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_unknown_payment_method(self, client, active_parking, employee_headers):
        response = client.post(f'/api/parkings/{active_parking.id}/exit-payment', data={
            'metodo_pago': 'CHEQUE',
            'fotos': [_photo()],
        }, headers=employee_headers, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_paying_a_closed_parking_fails(self, test_app, active_parking, employee):
        ParkingRepository.registrar_salida_con_pago(active_parking.id, employee.id, EFECTIVO, [b'foto'])
        with pytest.raises(InvalidState):
            ParkingRepository.registrar_salida_con_pago(active_parking.id, employee.id, EFECTIVO, [b'foto'])
        assert ParkingPago.query.count() == 1

    def test_closed_parking_stores_no_files(self, test_app, active_parking, employee):
        ParkingRepository.registrar_salida_con_pago(active_parking.id, employee.id, EFECTIVO, [b'foto'])
        photos = os.path.join(Bucket(PARKING_PHOTOS).directory, 'parking')
        before = sorted(os.listdir(photos))

        with pytest.raises(InvalidState):
            ParkingRepository.registrar_salida_con_pago(
                active_parking.id, employee.id, TRANSFERENCIA, [b'otra'], comprobante=b'recibo'
            )
        assert sorted(os.listdir(photos)) == before
        assert not os.path.exists(Bucket(PARKING_PAYMENTS).directory)


class TestLists:
    """Tests for the inside / outside / history lists."""

    def test_vehicles_inside(self, client, garage, active_parking, employee_headers):
        data = client.get(f'/api/garages/{garage.id_garage}/inside', headers=employee_headers).get_json()
        assert [p['id'] for p in data] == [active_parking.id]
        assert data[0]['vehicles']['plate'] == 'ABC123'
        assert ParkingRepository.esta_vehiculo_dentro(active_parking.vehicle_id)

    def test_vehicles_outside_after_exit(self, client, garage, active_parking, employee_headers):
        client.post(f'/api/parkings/{active_parking.id}/exit', json={}, headers=employee_headers)
        inside = client.get(f'/api/garages/{garage.id_garage}/inside', headers=employee_headers).get_json()
        outside = client.get(f'/api/garages/{garage.id_garage}/outside', headers=employee_headers).get_json()
        assert inside == []
        assert [p['id'] for p in outside] == [active_parking.id]

    def test_history_of_driver(self, client, active_parking, driver_headers):
        data = client.get('/api/parkings/history', headers=driver_headers).get_json()
        assert len(data) == 1
        assert data[0]['plate'] == 'ABC123'
        assert data[0]['garage_nombre'] == 'Garage Centro'
        assert data[0]['hora_salida'] is None

    def test_incidents(self, client, garage, active_parking, employee_headers):
        response = client.put(f'/api/parkings/{active_parking.id}/incidencia',
                              json={'es_incidencia': True}, headers=employee_headers)
        assert response.get_json()['es_incidencia'] is True
        data = client.get(f'/api/garages/{garage.id_garage}/incidencias', headers=employee_headers).get_json()
        assert [p['id'] for p in data] == [active_parking.id]

    def test_recent_activity_is_limited(self, test_app, garage, vehicle):
        now = datetime.now()
        for i in range(25):
            db.session.add(Parking(vehicle_id=vehicle.id, garage_id=garage.id_garage,
                                   hora_entrada=now - timedelta(hours=i), estado=COMPLETADA))
        db.session.commit()
        activity = ParkingRepository.get_actividad_reciente(garage.id_garage)
        assert len(activity) == 20
        assert activity[0].hora_entrada == now
