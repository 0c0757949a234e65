"""
Tests for vehicle registration and vehicle types.
"""
from models import Vehicle


class TestVehicleTypes:

    def test_list_vehicle_types(self, client):
        data = client.get('/api/vehicle-types').get_json()
        assert [t['name'] for t in data] == ['Auto', 'Moto', 'Camioneta']


class TestVehicles:
    """Tests for the /api/vehicles endpoints."""

    def test_add_vehicle_normalizes_plate(self, client, auto_type, driver_headers):
        response = client.post('/api/vehicles', json={
            'plate': ' pbc-1234 ', 'model': 'Spark', 'type_id': auto_type.id,
        }, headers=driver_headers)
        assert response.status_code == 201
        assert response.get_json()['plate'] == 'PBC-1234'

        mine = client.get('/api/vehicles', headers=driver_headers).get_json()
        assert [v['plate'] for v in mine] == ['PBC-1234']

    def test_duplicate_plate(self, client, vehicle, make_user, login):
        other = make_user('Otro')
        response = client.post('/api/vehicles', json={'plate': 'abc123'}, headers=login(other))
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Vehicle is already registered'

    def test_missing_plate(self, client, driver_headers):
        assert client.post('/api/vehicles', json={'model': 'Spark'}, headers=driver_headers).status_code == 400

    def test_unknown_type(self, client, driver_headers):
        response = client.post('/api/vehicles', json={'plate': 'X1', 'type_id': 999}, headers=driver_headers)
        assert response.status_code == 400

    def test_delete_vehicle(self, client, vehicle, driver_headers):
        response = client.delete(f'/api/vehicles/{vehicle.id}', headers=driver_headers)
        assert response.status_code == 200
        assert Vehicle.query.get(vehicle.id) is None

    def test_cannot_delete_while_inside(self, client, vehicle, active_parking, driver_headers):
        response = client.delete(f'/api/vehicles/{vehicle.id}', headers=driver_headers)
        assert response.status_code == 400
        assert Vehicle.query.get(vehicle.id) is not None

    def test_vehicle_with_history_is_detached(self, client, vehicle, active_parking, employee_headers,
                                              driver_headers):
        client.post(f'/api/parkings/{active_parking.id}/exit', json={}, headers=employee_headers)
        response = client.delete(f'/api/vehicles/{vehicle.id}', headers=driver_headers)
        assert response.status_code == 200
        assert client.get('/api/vehicles', headers=driver_headers).get_json() == []
        assert Vehicle.query.get(vehicle.id).user_id is None

    def test_cannot_delete_someone_elses(self, client, vehicle, make_user, login):
        stranger = make_user('Extraño')
        response = client.delete(f'/api/vehicles/{vehicle.id}', headers=login(stranger))
        assert response.status_code == 404
