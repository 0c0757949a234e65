from datetime import time

from app import app, db
from auth import grant_role
from models import Garage, Rate, User, VehicleType, ROLE_OWNER, ROLE_USER

DEMO_OWNER = {
    'nombre': 'Dueño Demo',
    'usuario': 'dueno',
    'cedula': '0102030405',
    'telefono': '0999999999',
    'correo': 'dueno@upark.test',
}


def seed():
    with app.app_context():
        db.create_all()

        owner = User.query.filter_by(correo=DEMO_OWNER['correo']).first()
        if not owner:
            owner = User(**DEMO_OWNER)
            owner.set_password('upark123')
            db.session.add(owner)
            db.session.flush()
            grant_role(owner, ROLE_USER)
            grant_role(owner, ROLE_OWNER)
            print(f"Added owner: {owner.correo} / upark123")

        garage = Garage.query.filter_by(nombre='Garage Centro').first()
        if not garage:
            garage = Garage(
                nombre='Garage Centro',
                direccion='Av. Principal y Calle 10',
                latitud=-2.9001,
                longitud=-79.0059,
                capacidad_total=20,
                horario='07:00 - 22:00',
                user_id=owner.id,
            )
            db.session.add(garage)
            db.session.flush()
            print("Added garage: Garage Centro (20 spaces)")

        if not Rate.query.filter_by(garage_id=garage.id_garage).first():
            auto = VehicleType.query.filter_by(name='Auto').first()
            moto = VehicleType.query.filter_by(name='Moto').first()
            db.session.add(Rate(garage_id=garage.id_garage, vehicle_type_id=auto.id,
                                base_rate=1.5, special_rate=1.0))
            print("Added Auto rate: $1.50 per hour")
            db.session.add(Rate(garage_id=garage.id_garage, vehicle_type_id=moto.id,
                                base_rate=0.75))
            print("Added Moto rate: $0.75 per hour")
            db.session.add(Rate(garage_id=garage.id_garage, base_rate=1.0,
                                hora_inicio=time(22, 0), hora_fin=time(6, 0)))
            print("Added night rate: $1.00 per hour (22:00 - 06:00)")
            db.session.add(Rate(garage_id=garage.id_garage, base_rate=12.0, time_unit='día'))
            print("Added daily rate: $12.00 per day")

        db.session.commit()
        print("Database seeded!")


if __name__ == '__main__':
    seed()
