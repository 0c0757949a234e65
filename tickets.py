import io
import qrcode

from storage import Bucket, TICKETS


def make_qr_png(data):
    """Render ``data`` as a QR code and return the PNG bytes."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def build_ticket(parking, plate):
    """
    Entry ticket handed to the driver.

    The QR code encodes the parking id, which is what the exit screen
    scans to look the stay up.
    """
    bucket = Bucket(TICKETS)
    path = f'{parking.id}.png'
    bucket.upload(path, make_qr_png(parking.id), upsert=True)

    return {
        'plate': plate,
        'hora_entrada': parking.hora_entrada.isoformat(),
        'fotos': list(parking.fotos_entrada or []),
        'garage': parking.garage_id or '',
        'parking_id': parking.id,
        'qr_url': bucket.public_url(path),
    }
