"""
Pytest configuration and fixtures for the U-Park tests.
"""
import pytest
import sys
import os
from datetime import datetime, timedelta

# Select the in-memory testing config before the app is imported
os.environ['UPARK_ENV'] = 'testing'

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app, seed_reference_data
from auth import grant_role
from models import (
    db, EmpleadoGarage, Garage, Parking, Rate, User, Vehicle, VehicleType,
    ACTIVA, ROLE_EMPLOYEE, ROLE_OWNER, ROLE_USER,
)
from session_manager import session_manager


@pytest.fixture
def test_app(tmp_path):
    """Application with a fresh in-memory database and a temporary storage root."""
    app.config['STORAGE_ROOT'] = str(tmp_path / 'storage')

    with app.app_context():
        db.create_all()
        seed_reference_data()
        yield app
        db.session.rollback()
        db.drop_all()


@pytest.fixture
def client(test_app):
    """Flask test client."""
    return test_app.test_client()


@pytest.fixture
def make_user(test_app):
    """Factory creating users with the given roles."""
    counter = {'n': 0}

    def _make(nombre='Usuario', roles=(ROLE_USER,), correo=None, password='secreto123'):
        counter['n'] += 1
        user = User(
            nombre=nombre,
            usuario=nombre.lower().replace(' ', '_'),
            cedula=f'01000000{counter["n"]:02d}',
            telefono='0999000000',
            correo=correo or f'user{counter["n"]}@upark.test',
        )
        user.set_password(password)
        db.session.add(user)
        db.session.flush()
        for role in roles:
            grant_role(user, role)
        db.session.commit()
        return user

    return _make


def headers_for(user):
    """Authorization header of a fresh session for ``user``."""
    session = session_manager.save_session(user)
    return {'Authorization': f'Bearer {session.access_token}'}


@pytest.fixture
def driver(make_user):
    return make_user('Conductor', roles=(ROLE_USER,), correo='conductor@upark.test')


@pytest.fixture
def owner(make_user):
    return make_user('Dueno', roles=(ROLE_USER, ROLE_OWNER), correo='dueno@upark.test')


@pytest.fixture
def garage(owner):
    garage = Garage(
        nombre='Garage Centro',
        direccion='Av. Principal',
        latitud=-2.9001,
        longitud=-79.0059,
        capacidad_total=2,
        horario='24h',
        user_id=owner.id,
    )
    db.session.add(garage)
    db.session.commit()
    return garage


@pytest.fixture
def employee(make_user, garage):
    user = make_user('Empleado', roles=(ROLE_USER, ROLE_EMPLOYEE), correo='empleado@upark.test')
    db.session.add(EmpleadoGarage(garage_id=garage.id_garage, empleado_id=user.id))
    db.session.commit()
    return user


@pytest.fixture
def auto_type(test_app):
    return VehicleType.query.filter_by(name='Auto').first()


@pytest.fixture
def vehicle(driver, auto_type):
    vehicle = Vehicle(user_id=driver.id, plate='ABC123', model='Corolla', color='Rojo', type_id=auto_type.id)
    db.session.add(vehicle)
    db.session.commit()
    return vehicle


@pytest.fixture
def rate(garage, auto_type):
    """Hourly rate for cars: 2.00, or 1.00 for subscribers."""
    rate = Rate(garage_id=garage.id_garage, vehicle_type_id=auto_type.id, base_rate=2.0, special_rate=1.0)
    db.session.add(rate)
    db.session.commit()
    return rate


@pytest.fixture
def active_parking(vehicle, garage, rate, employee):
    """Vehicle parked two and a half hours ago."""
    parking = Parking(
        vehicle_id=vehicle.id,
        garage_id=garage.id_garage,
        rate_id=rate.id,
        created_by_user_id=employee.id,
        hora_entrada=datetime.now() - timedelta(hours=2, minutes=30),
        estado=ACTIVA,
    )
    db.session.add(parking)
    db.session.commit()
    return parking


@pytest.fixture
def driver_headers(driver):
    return headers_for(driver)


@pytest.fixture
def owner_headers(owner):
    return headers_for(owner)


@pytest.fixture
def employee_headers(employee):
    return headers_for(employee)


@pytest.fixture
def login(test_app):
    """Factory returning the Authorization header for any user."""
    return headers_for
