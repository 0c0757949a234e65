import uuid
from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

DIAS_SEMANA = ['lunes', 'martes', 'miércoles', 'jueves', 'viernes', 'sábado', 'domingo']

ROLE_USER = 'user'
ROLE_EMPLOYEE = 'employee'
ROLE_OWNER = 'dueno_garage'

# Parking estados
PENDIENTE = 'pendiente'
ACTIVA = 'activa'
COMPLETADA = 'completada'
CANCELADA = 'cancelada'

# Subscription request status
APROBADA = 'aprobada'
RECHAZADA = 'rechazada'

EFECTIVO = 'EFECTIVO'
TRANSFERENCIA = 'TRANSFERENCIA'


def new_id():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value is not None else None


class Role(db.Model):
    __tablename__ = 'roles'
    id = db.Column(db.Integer, primary_key=True)
    nombre = db.Column(db.String(50), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'nombre': self.nombre}


class UserRole(db.Model):
    __tablename__ = 'user_roles'
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), primary_key=True)

    role = db.relationship('Role')


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    nombre = db.Column(db.String(120), nullable=False)
    usuario = db.Column(db.String(60), nullable=False)
    cedula = db.Column(db.String(20), unique=True, nullable=False)
    telefono = db.Column(db.String(30), nullable=False)
    correo = db.Column(db.String(120), unique=True, nullable=False)
    direccion = db.Column(db.String(200), nullable=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    user_roles = db.relationship('UserRole', cascade='all, delete-orphan', lazy=True)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def roles(self):
        return sorted(ur.role.nombre for ur in self.user_roles)

    def to_dict(self):
        return {
            'id': self.id,
            'nombre': self.nombre,
            'usuario': self.usuario,
            'cedula': self.cedula,
            'telefono': self.telefono,
            'correo': self.correo,
            'direccion': self.direccion,
            'roles': self.roles,
        }


class Garage(db.Model):
    __tablename__ = 'garages'
    id_garage = db.Column(db.String(36), primary_key=True, default=new_id)
    nombre = db.Column(db.String(120), nullable=False)
    image_url = db.Column(db.String(300), nullable=True)
    direccion = db.Column(db.String(200), nullable=False, default='')
    latitud = db.Column(db.Float, nullable=True)
    longitud = db.Column(db.Float, nullable=True)
    capacidad_total = db.Column(db.Integer, nullable=False, default=0)
    horario = db.Column(db.String(120), nullable=False, default='')
    fecha_creacion = db.Column(db.DateTime, default=datetime.now)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)

    def to_dict(self):
        return {
            'id_garage': self.id_garage,
            'nombre': self.nombre,
            'image_url': self.image_url,
            'direccion': self.direccion,
            'latitud': self.latitud,
            'longitud': self.longitud,
            'capacidad_total': self.capacidad_total,
            'horario': self.horario,
            'fecha_creacion': _iso(self.fecha_creacion),
            'is_active': self.is_active,
            'user_id': self.user_id,
        }


class EmpleadoGarage(db.Model):
    __tablename__ = 'empleados_garage'
    id = db.Column(db.Integer, primary_key=True)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=False)
    empleado_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    fecha_registro = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship('User')
    __table_args__ = (db.UniqueConstraint('garage_id', 'empleado_id', name='uq_empleado_garage'),)

    def to_dict(self):
        return {
            'id': self.id,
            'garage_id': self.garage_id,
            'empleado_id': self.empleado_id,
            'fecha_registro': _iso(self.fecha_registro),
            'users': self.user.to_dict() if self.user else None,
        }


class VehicleType(db.Model):
    __tablename__ = 'vehicle_types'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Vehicle(db.Model):
    __tablename__ = 'vehicles'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    plate = db.Column(db.String(20), unique=True, nullable=False)
    model = db.Column(db.String(50), nullable=True)
    registration = db.Column(db.String(50), nullable=True)
    color = db.Column(db.String(30), nullable=True)
    type_id = db.Column(db.Integer, db.ForeignKey('vehicle_types.id'), nullable=True)
    year = db.Column(db.Integer, nullable=True)

    owner = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'plate': self.plate,
            'model': self.model,
            'registration': self.registration,
            'color': self.color,
            'type_id': self.type_id,
            'year': self.year,
        }


class Rate(db.Model):
    __tablename__ = 'rates'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=False)
    vehicle_type_id = db.Column(db.Integer, db.ForeignKey('vehicle_types.id'), nullable=True)
    base_rate = db.Column(db.Float, nullable=False)
    time_unit = db.Column(db.String(10), nullable=False, default='hora')
    hora_inicio = db.Column(db.Time, nullable=True)
    hora_fin = db.Column(db.Time, nullable=True)
    dias_aplicables = db.Column(db.JSON, nullable=False, default=lambda: list(DIAS_SEMANA))
    special_rate = db.Column(db.Float, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    garage = db.relationship('Garage')

    def to_dict(self):
        return {
            'id': self.id,
            'garage_id': self.garage_id,
            'vehicle_type_id': self.vehicle_type_id,
            'base_rate': self.base_rate,
            'time_unit': self.time_unit,
            'hora_inicio': self.hora_inicio.strftime('%H:%M:%S') if self.hora_inicio else None,
            'hora_fin': self.hora_fin.strftime('%H:%M:%S') if self.hora_fin else None,
            'dias_aplicables': self.dias_aplicables,
            'special_rate': self.special_rate,
            'active': self.active,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
        }


class Parking(db.Model):
    __tablename__ = 'parkings'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    vehicle_id = db.Column(db.String(36), db.ForeignKey('vehicles.id'), nullable=True)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=True)
    rate_id = db.Column(db.String(36), db.ForeignKey('rates.id'), nullable=True)
    hora_entrada = db.Column(db.DateTime, nullable=False, default=datetime.now)
    hora_salida = db.Column(db.DateTime, nullable=True)
    total = db.Column(db.Float, nullable=True)
    pagado = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.now)
    tipo = db.Column(db.String(20), nullable=False, default='entrada')
    estado = db.Column(db.String(20), nullable=False, default=PENDIENTE)
    created_by_user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    fotos_entrada = db.Column(db.JSON, nullable=False, default=list)
    fotos_salida = db.Column(db.JSON, nullable=False, default=list)
    es_incidencia = db.Column(db.Boolean, nullable=False, default=False)

    vehicle = db.relationship('Vehicle')
    garage = db.relationship('Garage')
    employee = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'garage_id': self.garage_id,
            'rate_id': self.rate_id,
            'hora_entrada': _iso(self.hora_entrada),
            'hora_salida': _iso(self.hora_salida),
            'total': self.total,
            'pagado': self.pagado,
            'created_at': _iso(self.created_at),
            'tipo': self.tipo,
            'estado': self.estado,
            'created_by_user_id': self.created_by_user_id,
            'fotos_entrada': self.fotos_entrada,
            'fotos_salida': self.fotos_salida,
            'es_incidencia': self.es_incidencia,
        }

    def to_actividad(self):
        """Short form used by the recent-activity and inside-vehicles lists."""
        return {
            'id': self.id,
            'tipo': self.tipo,
            'hora_entrada': _iso(self.hora_entrada),
            'hora_salida': _iso(self.hora_salida),
            'vehicles': {'plate': self.vehicle.plate if self.vehicle else None},
        }


class ParkingPago(db.Model):
    __tablename__ = 'parking_pagos'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    parking_id = db.Column(db.String(36), db.ForeignKey('parkings.id'), nullable=False)
    metodo = db.Column(db.String(20), nullable=False)
    comprobante_url = db.Column(db.String(300), nullable=True)
    empleado_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    monto = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime, default=datetime.now)

    def to_dict(self):
        return {
            'id': self.id,
            'parking_id': self.parking_id,
            'metodo': self.metodo,
            'comprobante_url': self.comprobante_url,
            'empleado_id': self.empleado_id,
            'monto': self.monto,
        }


class Reserva(db.Model):
    __tablename__ = 'reservas'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=False)
    vehicle_id = db.Column(db.String(36), db.ForeignKey('vehicles.id'), nullable=False)
    empleado_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    hora_reserva = db.Column(db.DateTime, nullable=False)
    hora_llegada = db.Column(db.DateTime, nullable=True)
    estado = db.Column(db.String(20), nullable=False, default=PENDIENTE)

    vehicle = db.relationship('Vehicle')

    def to_dict(self):
        return {
            'id': self.id,
            'garage_id': self.garage_id,
            'vehicle_id': self.vehicle_id,
            'empleado_id': self.empleado_id,
            'hora_reserva': _iso(self.hora_reserva),
            'hora_llegada': _iso(self.hora_llegada),
            'estado': self.estado,
        }

    def to_dict_con_usuario(self):
        data = self.to_dict()
        owner = self.vehicle.owner if self.vehicle else None
        data['vehicles'] = {
            'plate': self.vehicle.plate if self.vehicle else None,
            'user_id': self.vehicle.user_id if self.vehicle else None,
        }
        data['users'] = owner.to_dict() if owner else None
        return data


class SubscriptionPlan(db.Model):
    __tablename__ = 'subscription_plans'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(80), nullable=False)
    max_vehicles = db.Column(db.Integer, nullable=False, default=1)
    price = db.Column(db.Float, nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'max_vehicles': self.max_vehicles,
            'price': self.price,
            'active': self.active,
        }


class SubscriptionRequest(db.Model):
    __tablename__ = 'subscription_requests'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=False)
    plan_id = db.Column(db.String(36), db.ForeignKey('subscription_plans.id'), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PENDIENTE)
    created_at = db.Column(db.DateTime, default=datetime.now)

    user = db.relationship('User')
    plan = db.relationship('SubscriptionPlan')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'garage_id': self.garage_id,
            'plan_id': self.plan_id,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'user': self.user.to_dict() if self.user else None,
            'plan': self.plan.to_dict() if self.plan else None,
        }


class Subscription(db.Model):
    __tablename__ = 'subscriptions'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    garage_id = db.Column(db.String(36), db.ForeignKey('garages.id_garage'), nullable=False)
    plan_id = db.Column(db.String(36), db.ForeignKey('subscription_plans.id'), nullable=False)
    start_date = db.Column(db.Date, nullable=False, default=lambda: datetime.now().date())
    active = db.Column(db.Boolean, nullable=False, default=True)

    plan = db.relationship('SubscriptionPlan')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'garage_id': self.garage_id,
            'plan_id': self.plan_id,
            'start_date': _iso(self.start_date),
            'active': self.active,
            'plan': self.plan.to_dict() if self.plan else None,
        }


class DeviceToken(db.Model):
    __tablename__ = 'device_tokens'
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), primary_key=True)
    token = db.Column(db.String(300), nullable=False)


class AuthSession(db.Model):
    __tablename__ = 'auth_sessions'
    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    access_token = db.Column(db.String(500), nullable=False)
    refresh_token = db.Column(db.String(100), unique=True, nullable=False)
    # Previous refresh token, kept so a late retry with it is recognised
    previous_refresh_token = db.Column(db.String(100), nullable=True)
    active_role = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)
    expires_at = db.Column(db.DateTime, nullable=False)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'access_token': self.access_token,
            'refresh_token': self.refresh_token,
            'active_role': self.active_role,
            'expires_at': _iso(self.expires_at),
        }
