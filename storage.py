"""
File storage buckets.

Photos, payment receipts, garage images and ticket QR codes are written
below ``STORAGE_ROOT/<bucket>/`` and served back by the ``/storage`` route.
"""
import logging
import os
import time
from flask import current_app

from errors import ValidationError

logger = logging.getLogger(__name__)

GARAGE_IMAGES = 'garages-image'
PARKING_PHOTOS = 'parking_photos'
PARKING_PAYMENTS = 'parking_payments'
TICKETS = 'tickets'

BUCKETS = (GARAGE_IMAGES, PARKING_PHOTOS, PARKING_PAYMENTS, TICKETS)


class Bucket:

    def __init__(self, name, root=None):
        if name not in BUCKETS:
            raise ValidationError(f'Unknown bucket: {name}')
        self.name = name
        self.root = root or current_app.config['STORAGE_ROOT']

    @property
    def directory(self):
        return os.path.join(self.root, self.name)

    def _resolve(self, path):
        full = os.path.normpath(os.path.join(self.directory, path))
        # Paths must stay inside the bucket
        if not full.startswith(os.path.normpath(self.directory) + os.sep):
            raise ValidationError(f'Invalid storage path: {path}')
        return full

    def upload(self, path, data, upsert=False):
        """
        Write ``data`` to ``path`` inside the bucket.

        Args:
            path: relative path, may contain sub-directories
            data: file contents as bytes
            upsert: overwrite an existing object instead of failing

        Returns:
            The relative path that was written.
        """
        full = self._resolve(path)
        if os.path.exists(full) and not upsert:
            raise ValidationError(f'Object already exists: {self.name}/{path}')
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, 'wb') as fh:
            fh.write(data)
        logger.info('Stored %d bytes in %s/%s', len(data), self.name, path)
        return path

    def public_url(self, path):
        return f'/storage/{self.name}/{path}'

    def exists(self, path):
        return os.path.exists(self._resolve(path))


def upload_photos(prefix, photos, bucket_name=PARKING_PHOTOS):
    """Upload a list of photo byte strings and return their public URLs."""
    bucket = Bucket(bucket_name)
    stamp = int(time.time() * 1000)
    urls = []
    for i, photo in enumerate(photos):
        path = f'parking/{prefix}_{stamp}_{i}.jpg'
        bucket.upload(path, photo, upsert=True)
        urls.append(bucket.public_url(path))
    return urls
