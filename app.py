import logging
from flask import Flask, jsonify, request, send_from_directory

import config
from errors import UparkError
from logging_config import setup_logging
from models import db, Role, SubscriptionPlan, VehicleType, ROLE_EMPLOYEE, ROLE_OWNER, ROLE_USER
from procedures import PROCEDURES
from routes.auth import auth_bp
from routes.garages import garages_bp
from routes.parking import parking_bp
from routes.rates import rates_bp
from routes.rpc import rpc_bp
from routes.subscriptions import subscriptions_bp
from routes.vehicles import vehicles_bp
from storage import Bucket

app = Flask(__name__)
app.config.from_object(config.get_config())

setup_logging(app.config['LOG_LEVEL'])
logger = logging.getLogger(__name__)

db.init_app(app)

DEFAULT_ROLES = (ROLE_USER, ROLE_EMPLOYEE, ROLE_OWNER)
DEFAULT_VEHICLE_TYPES = ('Auto', 'Moto', 'Camioneta')
DEFAULT_PLANS = (
    ('Básico', 1, 25.0),
    ('Familiar', 3, 60.0),
)


def seed_reference_data():
    """Insert the roles, vehicle types and plans every install needs."""
    for nombre in DEFAULT_ROLES:
        if not Role.query.filter_by(nombre=nombre).first():
            db.session.add(Role(nombre=nombre))
    for name in DEFAULT_VEHICLE_TYPES:
        if not VehicleType.query.filter_by(name=name).first():
            db.session.add(VehicleType(name=name))
    for name, max_vehicles, price in DEFAULT_PLANS:
        if not SubscriptionPlan.query.filter_by(name=name).first():
            db.session.add(SubscriptionPlan(name=name, max_vehicles=max_vehicles, price=price))
    db.session.commit()


# Create tables and seed reference data on startup
with app.app_context():
    db.create_all()
    seed_reference_data()

app.register_blueprint(auth_bp)
app.register_blueprint(garages_bp)
app.register_blueprint(parking_bp)
app.register_blueprint(rates_bp)
app.register_blueprint(rpc_bp)
app.register_blueprint(subscriptions_bp)
app.register_blueprint(vehicles_bp)


@app.errorhandler(UparkError)
def handle_upark_error(error):
    db.session.rollback()
    if error.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.path, error.message)
    else:
        logger.info('%s %s rejected: %s', request.method, request.path, error.message)
    return jsonify({'error': error.message}), error.status_code


@app.route('/')
def index():
    return jsonify({'name': 'U-Park', 'procedures': sorted(PROCEDURES)})


@app.route('/storage/<bucket>/<path:filename>')
def storage_file(bucket, filename):
    """Serve an object stored in one of the buckets."""
    return send_from_directory(Bucket(bucket).directory, filename)


if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=app.config.get('DEBUG', False))
