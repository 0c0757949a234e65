"""
Repositories over the U-Park tables.

Each repository is a thin proxy around ``db.session``. Reads that hit a
database error are logged and answered with an empty sentinel (``[]``,
``None``, ``False``); invalid input raises an :class:`errors.UparkError`
so the caller can report the message.
"""
import logging
from datetime import datetime
from geopy.distance import geodesic
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

import procedures
import reports
from auth import grant_role
from errors import InvalidState, NotFound, ValidationError
from models import (
    db, DIAS_SEMANA, EmpleadoGarage, Garage, Parking, Rate, Reserva, Role,
    Subscription, SubscriptionPlan, SubscriptionRequest, User, UserRole, Vehicle,
    VehicleType, ACTIVA, CANCELADA, COMPLETADA, EFECTIVO, PENDIENTE, RECHAZADA,
    ROLE_EMPLOYEE, ROLE_OWNER, TRANSFERENCIA,
)
from storage import Bucket, GARAGE_IMAGES, PARKING_PAYMENTS, upload_photos
from tariffs import UNIT_HOURS
from tickets import build_ticket
from utils import normalize_plate, parse_date, parse_datetime, parse_time

logger = logging.getLogger(__name__)


# ============================================
# Garages
# ============================================

class GarageRepository:

    @staticmethod
    def new_garage(data, owner_id, image=None):
        """
        Insert a garage, store its image and make the owner a garage owner.

        Returns:
            The new Garage, or None if it could not be stored.
        """
        if not data.get('nombre'):
            raise ValidationError('Missing required fields: nombre')
        capacidad = data.get('capacidad_total', 0)
        if not isinstance(capacidad, int) or isinstance(capacidad, bool) or capacidad < 0:
            raise ValidationError('capacidad_total must be a non-negative integer')

        try:
            garage = Garage(
                nombre=data['nombre'],
                direccion=data.get('direccion', ''),
                latitud=data.get('latitud'),
                longitud=data.get('longitud'),
                capacidad_total=capacidad,
                horario=data.get('horario', ''),
                is_active=data.get('is_active', True),
                user_id=owner_id,
            )
            db.session.add(garage)
            db.session.flush()

            if image:
                bucket = Bucket(GARAGE_IMAGES)
                path = f'garage_{garage.id_garage}.jpg'
                bucket.upload(path, image, upsert=True)
                garage.image_url = bucket.public_url(path)

            owner = db.session.get(User, owner_id)
            if owner is not None:
                grant_role(owner, ROLE_OWNER)

            db.session.commit()
            logger.info('Garage %s created by %s', garage.id_garage, owner_id)
            return garage
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error creating garage: %s', e)
            return None

    @staticmethod
    def get_garages_by_owner(owner_id):
        try:
            return Garage.query.filter_by(user_id=owner_id).order_by(Garage.nombre).all()
        except SQLAlchemyError as e:
            logger.error('Error loading garages of %s: %s', owner_id, e)
            return []

    @staticmethod
    def get_garage_by_id(garage_id):
        if not garage_id:
            return None
        try:
            return db.session.get(Garage, garage_id)
        except SQLAlchemyError as e:
            logger.error('Error loading garage %s: %s', garage_id, e)
            return None

    @staticmethod
    def list_garages():
        try:
            return Garage.query.filter_by(is_active=True).order_by(Garage.nombre).all()
        except SQLAlchemyError as e:
            logger.error('Error loading garages: %s', e)
            return []

    @staticmethod
    def get_nearby_garages(lat, lng, radius_km=1.0):
        """
        Active garages within ``radius_km`` of a point, nearest first.

        Without a location every garage with coordinates is returned.

        Returns:
            list of (garage, distance_km or None)
        """
        garages = [
            g for g in GarageRepository.list_garages()
            if g.latitud is not None and g.longitud is not None
        ]
        if lat is None or lng is None:
            return [(g, None) for g in garages]

        nearby = []
        for g in garages:
            distance = geodesic((lat, lng), (g.latitud, g.longitud)).km
            if distance <= radius_km:
                nearby.append((g, distance))
        nearby.sort(key=lambda item: item[1])
        return nearby


def format_distance(km):
    if km < 1:
        return f'{int(km * 1000)} m'
    return f'{km:.1f} km'


# ============================================
# Employees
# ============================================

class EmpleadoGarageRepository:

    @staticmethod
    def add_empleado_to_garage(garage_id, cedula):
        """Assign the user with ``cedula`` to a garage and grant the employee role."""
        if not garage_id:
            logger.error('add_empleado_to_garage: empty garage_id')
            return False
        try:
            if db.session.get(Garage, garage_id) is None:
                logger.error('add_empleado_to_garage: garage %s not found', garage_id)
                return False
            user = User.query.filter_by(cedula=str(cedula)).first()
            if user is None:
                logger.error('add_empleado_to_garage: no user with cedula %s', cedula)
                return False

            exists = EmpleadoGarage.query.filter_by(garage_id=garage_id, empleado_id=user.id).first()
            if exists is None:
                db.session.add(EmpleadoGarage(garage_id=garage_id, empleado_id=user.id))
            grant_role(user, ROLE_EMPLOYEE)
            db.session.commit()
            logger.info('Employee %s assigned to garage %s', user.id, garage_id)
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error adding employee: %s', e)
            return False

    @staticmethod
    def get_garage_by_empleado_id(user_id):
        try:
            row = EmpleadoGarage.query.filter_by(empleado_id=user_id).first()
            return row.garage_id if row else None
        except SQLAlchemyError as e:
            logger.error('Error finding garage of employee %s: %s', user_id, e)
            return None

    @staticmethod
    def get_empleados_by_garage(garage_id):
        try:
            empleados = (
                EmpleadoGarage.query
                .filter_by(garage_id=garage_id)
                .order_by(EmpleadoGarage.fecha_registro)
                .all()
            )
            logger.debug('Employees found for %s: %d', garage_id, len(empleados))
            return empleados
        except SQLAlchemyError as e:
            logger.error('Error loading employees of %s: %s', garage_id, e)
            return []

    @staticmethod
    def remove_empleado_from_garage(garage_id, cedula):
        """
        Unassign an employee. The employee role is revoked once the user
        works at no garage at all.
        """
        if not garage_id:
            return False
        try:
            user = User.query.filter_by(cedula=str(cedula)).first()
            if user is None:
                return False
            deleted = EmpleadoGarage.query.filter_by(garage_id=garage_id, empleado_id=user.id).delete()
            if not EmpleadoGarage.query.filter_by(empleado_id=user.id).count():
                role = Role.query.filter_by(nombre=ROLE_EMPLOYEE).first()
                if role is not None:
                    UserRole.query.filter_by(user_id=user.id, role_id=role.id).delete()
            db.session.commit()
            return bool(deleted)
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error removing employee: %s', e)
            return False

    @staticmethod
    def get_stats(garage_id):
        try:
            return reports.garage_stats(garage_id)
        except SQLAlchemyError as e:
            logger.error('Error computing stats of %s: %s', garage_id, e)
            return reports.empty_stats()

    @staticmethod
    def works_at(user_id, garage_id):
        return EmpleadoGarage.query.filter_by(empleado_id=user_id, garage_id=garage_id).first() is not None


# ============================================
# Vehicles
# ============================================

class VehiclesRepository:

    @staticmethod
    def get_vehicles_by_user(user_id):
        try:
            return Vehicle.query.filter_by(user_id=user_id).order_by(Vehicle.plate).all()
        except SQLAlchemyError as e:
            logger.error('Error loading vehicles of %s: %s', user_id, e)
            return []

    @staticmethod
    def add_vehicle(data, user_id):
        plate = normalize_plate(data.get('plate'))
        if not plate:
            raise ValidationError('Missing required fields: plate')
        type_id = data.get('type_id')
        if type_id is not None and db.session.get(VehicleType, type_id) is None:
            raise ValidationError('Unknown vehicle type')

        try:
            vehicle = Vehicle(
                user_id=user_id,
                plate=plate,
                model=data.get('model'),
                registration=data.get('registration'),
                color=data.get('color'),
                type_id=type_id,
                year=data.get('year'),
            )
            db.session.add(vehicle)
            db.session.commit()
            return vehicle
        except IntegrityError:
            db.session.rollback()
            raise ValidationError('Vehicle is already registered')
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error adding vehicle: %s', e)
            return None

    @staticmethod
    def delete_vehicle(vehicle_id, user_id):
        vehicle = db.session.get(Vehicle, vehicle_id)
        if vehicle is None or vehicle.user_id != user_id:
            return False
        if ParkingRepository.esta_vehiculo_dentro(vehicle_id):
            raise InvalidState('Cannot delete: vehicle is inside a garage')
        if Parking.query.filter_by(vehicle_id=vehicle_id).count() or \
                Reserva.query.filter_by(vehicle_id=vehicle_id).count():
            # History keeps pointing at the vehicle; detach it from the owner instead
            vehicle.user_id = None
            vehicle.plate = f'{vehicle.plate}#{vehicle.id[:8]}'
        else:
            db.session.delete(vehicle)
        try:
            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Error deleting vehicle %s: %s', vehicle_id, e)
            return False

    @staticmethod
    def get_vehicle_id_by_plate(plate):
        vehicle = Vehicle.query.filter_by(plate=normalize_plate(plate)).first()
        return vehicle.id if vehicle else None

    @staticmethod
    def get_vehicle_types():
        try:
            return [(t.id, t.name) for t in VehicleType.query.order_by(VehicleType.id).all()]
        except SQLAlchemyError as e:
            logger.error('Error loading vehicle types: %s', e)
            return []


# ============================================
# Rates
# ============================================

def _rate_fields(data, partial=False):
    """Validate and convert the writable fields of a rate."""
    fields = {}

    if 'garage_id' in data or not partial:
        if not data.get('garage_id') or db.session.get(Garage, data.get('garage_id')) is None:
            raise ValidationError('Garage not found')
        fields['garage_id'] = data['garage_id']

    if 'base_rate' in data or not partial:
        base_rate = data.get('base_rate')
        if not isinstance(base_rate, (int, float)) or isinstance(base_rate, bool) or base_rate <= 0:
            raise ValidationError('base_rate must be a positive number')
        fields['base_rate'] = float(base_rate)

    if 'time_unit' in data or not partial:
        time_unit = data.get('time_unit', 'hora')
        if time_unit not in UNIT_HOURS:
            raise ValidationError(f'Unidad de tiempo inválida: {time_unit}')
        fields['time_unit'] = time_unit

    if 'vehicle_type_id' in data:
        type_id = data['vehicle_type_id']
        if type_id is not None and db.session.get(VehicleType, type_id) is None:
            raise ValidationError('Unknown vehicle type')
        fields['vehicle_type_id'] = type_id

    if 'special_rate' in data:
        special = data['special_rate']
        if special is not None and (not isinstance(special, (int, float)) or special < 0):
            raise ValidationError('special_rate must be a non-negative number')
        fields['special_rate'] = special

    if 'dias_aplicables' in data:
        dias = data['dias_aplicables'] or []
        unknown = [d for d in dias if d not in DIAS_SEMANA]
        if unknown or not dias:
            raise ValidationError('dias_aplicables must be a non-empty list of weekdays')
        fields['dias_aplicables'] = [d for d in DIAS_SEMANA if d in dias]

    for key in ('hora_inicio', 'hora_fin'):
        if key in data:
            fields[key] = parse_time(data[key], key)
    for key in ('start_date', 'end_date'):
        if key in data:
            fields[key] = parse_date(data[key], key)
    if 'active' in data:
        fields['active'] = bool(data['active'])

    return fields


class RatesRepository:

    @staticmethod
    def get_garages(user_id=None):
        """(id, nombre) pairs of the garages of ``user_id``, or of all garages."""
        try:
            query = Garage.query
            if user_id is not None:
                query = query.filter_by(user_id=user_id)
            return [(g.id_garage, g.nombre) for g in query.order_by(Garage.nombre).all()]
        except SQLAlchemyError as e:
            logger.error('Error loading garages: %s', e)
            return []

    @staticmethod
    def get_all_rates_for_owner(user_id):
        """Rates of every garage of an owner, keyed by garage name."""
        result = {}
        for garage in GarageRepository.get_garages_by_owner(user_id):
            result[garage.nombre] = Rate.query.filter_by(garage_id=garage.id_garage).all()
        return result

    @staticmethod
    def get_rate(rate_id):
        rate = db.session.get(Rate, rate_id)
        if rate is None:
            raise NotFound('Rate not found')
        return rate

    @staticmethod
    def create_rate(data):
        fields = _rate_fields(data)
        rate = Rate(**fields)
        if rate.start_date and rate.end_date and rate.start_date > rate.end_date:
            raise ValidationError('start_date must not be after end_date')
        db.session.add(rate)
        db.session.commit()
        logger.info('Rate %s created for garage %s', rate.id, rate.garage_id)
        return rate

    @staticmethod
    def update_rate(rate_id, data):
        rate = RatesRepository.get_rate(rate_id)
        for key, value in _rate_fields(data, partial=True).items():
            setattr(rate, key, value)
        if rate.start_date and rate.end_date and rate.start_date > rate.end_date:
            db.session.rollback()
            raise ValidationError('start_date must not be after end_date')
        db.session.commit()
        return rate

    @staticmethod
    def delete_rate(rate_id):
        rate = RatesRepository.get_rate(rate_id)
        in_use = Parking.query.filter_by(rate_id=rate.id, estado=ACTIVA).count()
        if in_use:
            raise InvalidState('Cannot delete: active sessions exist')
        # Completed parkings keep their total but lose the link
        Parking.query.filter_by(rate_id=rate.id).update({'rate_id': None}, synchronize_session=False)
        db.session.delete(rate)
        db.session.commit()
        return True

    @staticmethod
    def toggle_active(rate_id, active):
        rate = RatesRepository.get_rate(rate_id)
        rate.active = bool(active)
        db.session.commit()
        return rate


# ============================================
# Parkings
# ============================================

class ParkingRepository:

    @staticmethod
    def get_parking_by_id(parking_id):
        try:
            return db.session.get(Parking, parking_id)
        except SQLAlchemyError as e:
            logger.error('Error loading parking %s: %s', parking_id, e)
            return None

    @staticmethod
    def esta_vehiculo_dentro(vehicle_id):
        return Parking.query.filter_by(vehicle_id=vehicle_id, estado=ACTIVA).first() is not None

    @staticmethod
    def _check_capacity(garage):
        inside = Parking.query.filter_by(garage_id=garage.id_garage, estado=ACTIVA).count()
        if inside >= garage.capacidad_total:
            raise InvalidState('El garage está lleno')

    @staticmethod
    def registrar_entrada(garage_id, plate, empleado_id, rate_id=None, fotos=None):
        """
        Register a vehicle entering a garage.

        Returns:
            tuple: (parking, ticket)
        """
        garage = db.session.get(Garage, garage_id) if garage_id else None
        if garage is None:
            raise NotFound('Garage not found')
        vehicle_id = VehiclesRepository.get_vehicle_id_by_plate(plate)
        if vehicle_id is None:
            raise NotFound('No existe un vehículo con esa placa')
        if ParkingRepository.esta_vehiculo_dentro(vehicle_id):
            raise InvalidState('El vehículo ya está dentro')
        ParkingRepository._check_capacity(garage)

        now = datetime.now()
        if rate_id is not None:
            rate = db.session.get(Rate, rate_id)
            if rate is None or rate.garage_id != garage_id or not rate.active:
                raise ValidationError('Rate does not belong to this garage or is inactive')
        else:
            rate_id = procedures.asignar_tarifa(garage_id, vehicle_id, now)

        parking = Parking(
            garage_id=garage_id,
            vehicle_id=vehicle_id,
            rate_id=rate_id,
            created_by_user_id=empleado_id,
            hora_entrada=now,
            tipo='entrada',
            estado=ACTIVA,
            fotos_entrada=upload_photos(vehicle_id, fotos or []),
        )
        db.session.add(parking)
        db.session.commit()
        logger.info('Entry registered: plate %s at garage %s', normalize_plate(plate), garage_id)
        return parking, build_ticket(parking, normalize_plate(plate))

    @staticmethod
    def registrar_entrada_desde_reserva(reserva_id, empleado_id, fotos=None):
        """Turn a pending reservation into an active parking."""
        reserva = db.session.get(Reserva, reserva_id) if reserva_id else None
        if reserva is None:
            raise NotFound('Reserva not found')
        if reserva.estado != PENDIENTE:
            raise InvalidState(f'La reserva está {reserva.estado}')
        if not reserva.vehicle_id:
            raise ValidationError('Reserva sin vehículo')
        if ParkingRepository.esta_vehiculo_dentro(reserva.vehicle_id):
            raise InvalidState('Este vehículo ya está dentro.')
        ParkingRepository._check_capacity(db.session.get(Garage, reserva.garage_id))

        now = datetime.now()
        parking = Parking(
            garage_id=reserva.garage_id,
            vehicle_id=reserva.vehicle_id,
            rate_id=procedures.asignar_tarifa(reserva.garage_id, reserva.vehicle_id, now),
            created_by_user_id=empleado_id,
            hora_entrada=now,
            tipo='reserva',
            estado=ACTIVA,
            fotos_entrada=upload_photos(reserva.vehicle_id, fotos or []),
        )
        db.session.add(parking)
        reserva.estado = ACTIVA
        reserva.hora_llegada = now
        reserva.empleado_id = empleado_id
        db.session.commit()
        plate = reserva.vehicle.plate if reserva.vehicle else ''
        return parking, build_ticket(parking, plate)

    @staticmethod
    def registrar_salida(parking_id, hora_salida=None, fotos_salida=None):
        parking = db.session.get(Parking, parking_id) if parking_id else None
        if parking is None:
            raise NotFound('Parking not found')
        if parking.estado != ACTIVA or parking.hora_salida is not None:
            raise InvalidState('Session already closed')
        urls = upload_photos(parking.vehicle_id, fotos_salida or [])
        procedures.confirmar_salida(parking_id, hora_salida, urls)
        return parking

    @staticmethod
    def registrar_salida_con_pago(parking_id, empleado_id, metodo_pago, fotos_salida, comprobante=None):
        """
        Close a parking with its payment.

        A transfer needs a receipt photo and at least one exit photo is required.
        """
        if metodo_pago not in (EFECTIVO, TRANSFERENCIA):
            raise ValidationError(f'Método de pago inválido: {metodo_pago}')
        if metodo_pago == TRANSFERENCIA and not comprobante:
            raise ValidationError('Debe adjuntar comprobante de transferencia')
        if not fotos_salida:
            raise ValidationError('Debe tomar al menos una foto del vehículo')
        parking = db.session.get(Parking, parking_id) if parking_id else None
        if parking is None:
            raise NotFound('Parking not found')
        if parking.estado != ACTIVA or parking.hora_salida is not None:
            raise InvalidState('Session already closed')

        comprobante_url = None
        if metodo_pago == TRANSFERENCIA:
            bucket = Bucket(PARKING_PAYMENTS)
            path = f'payments/{parking_id}-{int(datetime.now().timestamp() * 1000)}.jpg'
            bucket.upload(path, comprobante, upsert=True)
            comprobante_url = bucket.public_url(path)

        procedures.registrar_salida_con_pago(
            p_parking_id=parking_id,
            p_empleado_id=empleado_id,
            p_metodo=metodo_pago,
            p_comprobante_url=comprobante_url,
            p_fotos_salida=upload_photos(parking.vehicle_id, fotos_salida),
        )
        return parking

    @staticmethod
    def get_vehiculos_dentro(garage_id=None):
        try:
            query = Parking.query.filter_by(estado=ACTIVA)
            if garage_id:
                query = query.filter_by(garage_id=garage_id)
            return query.order_by(Parking.hora_entrada).all()
        except SQLAlchemyError as e:
            logger.error('Error loading vehicles inside: %s', e)
            return []

    @staticmethod
    def get_vehiculos_fuera(garage_id=None):
        try:
            query = Parking.query.filter_by(estado=COMPLETADA)
            if garage_id:
                query = query.filter_by(garage_id=garage_id)
            return query.order_by(Parking.hora_salida.desc()).all()
        except SQLAlchemyError as e:
            logger.error('Error loading completed parkings: %s', e)
            return []

    @staticmethod
    def get_actividad_reciente(garage_id, limit=20):
        try:
            return (
                Parking.query
                .filter_by(garage_id=garage_id)
                .order_by(Parking.hora_entrada.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error('Error loading activity of %s: %s', garage_id, e)
            return []

    @staticmethod
    def marcar_incidencia(parking_id, es_incidencia=True):
        parking = db.session.get(Parking, parking_id) if parking_id else None
        if parking is None:
            raise NotFound('Parking not found')
        parking.es_incidencia = bool(es_incidencia)
        db.session.commit()
        return parking

    @staticmethod
    def get_incidencias(garage_id):
        try:
            return (
                Parking.query
                .filter_by(garage_id=garage_id, es_incidencia=True)
                .order_by(Parking.hora_entrada.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error('Error loading incidents of %s: %s', garage_id, e)
            return []

    @staticmethod
    def get_historial_by_user(user_id):
        try:
            return procedures.historial_parking_usuario(user_id)
        except SQLAlchemyError as e:
            logger.error('Error loading history of %s: %s', user_id, e)
            return []


# ============================================
# Reservations
# ============================================

class ReservasRepository:

    @staticmethod
    def get_reserva(reserva_id):
        reserva = db.session.get(Reserva, reserva_id) if reserva_id else None
        if reserva is None:
            raise NotFound('Reserva not found')
        return reserva

    @staticmethod
    def crear_reserva(garage_id, vehicle_id, hora_reserva, user_id):
        garage = db.session.get(Garage, garage_id) if garage_id else None
        if garage is None:
            raise NotFound('Garage not found')
        vehicle = db.session.get(Vehicle, vehicle_id) if vehicle_id else None
        if vehicle is None or vehicle.user_id != user_id:
            raise NotFound('Vehicle not found')
        hora = parse_datetime(hora_reserva, 'hora_reserva')
        if hora is None:
            raise ValidationError('Missing required fields: hora_reserva')
        if hora < datetime.now():
            raise ValidationError('La hora de reserva no puede estar en el pasado')

        pending = Reserva.query.filter_by(garage_id=garage_id, vehicle_id=vehicle_id, estado=PENDIENTE).first()
        if pending is not None:
            raise InvalidState('Ya existe una reserva pendiente para este vehículo')
        if SubscriptionRepository.get_available_spaces(garage_id) <= 0:
            raise InvalidState('No hay espacios disponibles')

        reserva = Reserva(garage_id=garage_id, vehicle_id=vehicle_id, hora_reserva=hora, estado=PENDIENTE)
        db.session.add(reserva)
        db.session.commit()
        logger.info('Reservation %s created for vehicle %s', reserva.id, vehicle_id)
        return reserva

    @staticmethod
    def activar_reserva(reserva_id):
        reserva = ReservasRepository.get_reserva(reserva_id)
        if reserva.estado != PENDIENTE:
            raise InvalidState(f'La reserva está {reserva.estado}')
        reserva.estado = ACTIVA
        reserva.hora_llegada = datetime.now()
        db.session.commit()
        return reserva

    @staticmethod
    def cancelar_reserva(reserva_id):
        reserva = ReservasRepository.get_reserva(reserva_id)
        if reserva.estado != PENDIENTE:
            raise InvalidState(f'La reserva está {reserva.estado}')
        reserva.estado = CANCELADA
        db.session.commit()
        return True

    @staticmethod
    def listar_reservas_por_garage(garage_id):
        try:
            return Reserva.query.filter_by(garage_id=garage_id).order_by(Reserva.hora_reserva).all()
        except SQLAlchemyError as e:
            logger.error('Error loading reservations of %s: %s', garage_id, e)
            return []

    @staticmethod
    def get_reservas_con_usuario(garage_id):
        """Pending reservations of a garage with vehicle and owner, earliest first."""
        try:
            return (
                Reserva.query
                .filter_by(garage_id=garage_id, estado=PENDIENTE)
                .order_by(Reserva.hora_reserva.asc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error('Error loading reservations of %s: %s', garage_id, e)
            return []

    @staticmethod
    def get_reservas_by_user(user_id):
        try:
            return (
                Reserva.query
                .join(Vehicle, Reserva.vehicle_id == Vehicle.id)
                .filter(Vehicle.user_id == user_id)
                .order_by(Reserva.hora_reserva.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error('Error loading reservations of user %s: %s', user_id, e)
            return []


# ============================================
# Subscriptions
# ============================================

class SubscriptionRepository:

    @staticmethod
    def get_plans():
        try:
            return SubscriptionPlan.query.filter_by(active=True).order_by(SubscriptionPlan.price).all()
        except SQLAlchemyError as e:
            logger.error('Error loading plans: %s', e)
            return []

    @staticmethod
    def get_active_subscription(user_id, garage_id):
        try:
            return Subscription.query.filter_by(user_id=user_id, garage_id=garage_id, active=True).first()
        except SQLAlchemyError as e:
            logger.error('Error loading subscription: %s', e)
            return None

    @staticmethod
    def get_active_subscription_by_user(user_id):
        try:
            return Subscription.query.filter_by(user_id=user_id, active=True).first()
        except SQLAlchemyError as e:
            logger.error('Error loading subscription: %s', e)
            return None

    @staticmethod
    def get_available_spaces(garage_id):
        """Free spaces of a garage; never negative, 0 when it cannot be computed."""
        try:
            garage = db.session.get(Garage, garage_id)
            if garage is None:
                return 0
            activos = Parking.query.filter_by(garage_id=garage_id, estado=ACTIVA).count()
            libres = garage.capacidad_total - activos
            logger.debug('Free spaces at %s: %d (total %d, inside %d)',
                         garage_id, libres, garage.capacidad_total, activos)
            return max(0, libres)
        except SQLAlchemyError as e:
            logger.error('Error computing free spaces: %s', e)
            return 0

    @staticmethod
    def request_subscription(user_id, garage_id, plan_id):
        return procedures.solicitar_suscripcion(user_id, garage_id, plan_id)

    @staticmethod
    def cancel_subscription(subscription_id, user_id):
        subscription = db.session.get(Subscription, subscription_id) if subscription_id else None
        if subscription is None or subscription.user_id != user_id:
            raise NotFound('Subscription not found')
        subscription.active = False
        db.session.commit()
        return subscription

    @staticmethod
    def get_solicitudes_by_garage(garage_id, status=None):
        try:
            query = SubscriptionRequest.query.filter_by(garage_id=garage_id)
            if status:
                query = query.filter_by(status=status)
            return query.order_by(SubscriptionRequest.created_at).all()
        except SQLAlchemyError as e:
            logger.error('Error loading requests of %s: %s', garage_id, e)
            return []

    @staticmethod
    def get_solicitud(request_id):
        request_row = db.session.get(SubscriptionRequest, request_id) if request_id else None
        if request_row is None:
            raise NotFound('Subscription request not found')
        return request_row

    @staticmethod
    def aprobar_solicitud(request_id):
        return procedures.aprobar_suscripcion(request_id)

    @staticmethod
    def rechazar_solicitud(request_id):
        request_row = SubscriptionRepository.get_solicitud(request_id)
        if request_row.status != PENDIENTE:
            raise InvalidState(f'Request is already {request_row.status}')
        request_row.status = RECHAZADA
        db.session.commit()
        return request_row


# ============================================
# Reports
# ============================================

class GarageReportRepository:

    @staticmethod
    def get_parking_ids_by_garage(garage_id):
        try:
            rows = db.session.query(Parking.id).filter_by(garage_id=garage_id, estado=COMPLETADA).all()
            return [pid for (pid,) in rows]
        except SQLAlchemyError as e:
            logger.error('Error loading parking ids of %s: %s', garage_id, e)
            return []

    @staticmethod
    def get_garage_occupancy_report(garage_id, start_date, end_date):
        return reports.rpc_get_garage_occupancy_report({
            'garage_id': garage_id,
            'start_date': start_date,
            'end_date': end_date,
        })

    @staticmethod
    def get_garage_income_report(garage_id, parking_ids, start_date, end_date):
        return reports.rpc_get_garage_income_report({
            'garage_id': garage_id,
            'parking_ids': parking_ids,
            'start_date': start_date,
            'end_date': end_date,
        })
