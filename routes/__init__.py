"""
HTTP views, one blueprint per screen family.
"""
from flask import g, request

from errors import Forbidden, NotFound
from repositories import EmpleadoGarageRepository, GarageRepository


def request_data():
    """Fields of a JSON body or of a multipart form."""
    if request.mimetype == 'multipart/form-data':
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def uploaded_files(name):
    return [f.read() for f in request.files.getlist(name) if f and f.filename]


def owned_garage(garage_id):
    """The garage ``garage_id`` if the current user owns it."""
    garage = GarageRepository.get_garage_by_id(garage_id)
    if garage is None:
        raise NotFound('Garage not found')
    if garage.user_id != g.user.id:
        raise Forbidden('No eres el dueño de este garage')
    return garage


def staff_garage(garage_id):
    """The garage ``garage_id`` if the current user owns it or works there."""
    garage = GarageRepository.get_garage_by_id(garage_id)
    if garage is None:
        raise NotFound('Garage not found')
    if garage.user_id != g.user.id and not EmpleadoGarageRepository.works_at(g.user.id, garage_id):
        raise Forbidden('No trabajas en este garage')
    return garage
