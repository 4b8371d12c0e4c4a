"""
Email utility module for TripFlow.
Sends expense reports with their receipts attached, using Flask-Mailman.
Retries with exponential backoff.
"""
import logging
import re
import time
from email.utils import make_msgid

import requests
from flask import current_app, render_template
from flask_mailman import EmailMultiAlternatives

from tripflow.services.errors import EmailDeliveryError
from tripflow.services.trip_service import compute_totals

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds (2, 4, 8 with exponential backoff)


def send_trip_report(trip, notes, recipient):
    """
    Email a trip expense report with every downloadable receipt attached.

    Args:
        trip: Trip mapping (name, destination, purpose, dates, collaborator, contract_number)
        notes: List of expense note mappings
        recipient: Email address of the recipient

    Returns:
        dict: success, emailId and receiptsCount

    Raises:
        EmailDeliveryError: If sending failed after all retries
    """
    email_id = make_msgid(domain='tripflow.app')
    logger.info(f"[EMAIL:{email_id}] Rapport {trip['name']} pour {recipient}")

    totals = compute_totals(notes)
    receipts = collect_receipts(trip['name'], notes)
    logger.info(f"[EMAIL:{email_id}] {len(receipts)} factures téléchargées")

    html_body = render_template(
        'email/trip_report.html',
        trip=trip,
        notes=notes,
        totals=totals,
    )

    msg = EmailMultiAlternatives(
        subject=f"Rapport de frais - {trip['name']} ({trip['destination']})",
        body=_html_to_text(html_body),
        from_email=current_app.config.get('MAIL_DEFAULT_SENDER', 'noreply@tripflow.app'),
        to=[recipient],
        headers={'Message-ID': email_id},
    )
    msg.attach_alternative(html_body, 'text/html')
    for filename, content, mimetype in receipts:
        msg.attach(filename, content, mimetype)

    error = _send_with_retry(msg, email_id, recipient)
    if error is not None:
        raise EmailDeliveryError(f"Erreur lors de l'envoi de l'email : {error}")

    return {
        'success': True,
        'emailId': email_id,
        'receiptsCount': len(receipts),
    }


def collect_receipts(trip_name, notes):
    """Download receipts of notes that have one. Failed downloads are skipped.

    Returns:
        list of (filename, content, mimetype)
    """
    timeout = current_app.config.get('RECEIPT_FETCH_TIMEOUT', 10)
    with_receipt = [note for note in notes if note.get('receipt_url')]

    receipts = []
    for index, note in enumerate(with_receipt, start=1):
        url = note['receipt_url']
        content = fetch_receipt(url, timeout)
        if content is None:
            continue
        extension = receipt_extension(url)
        filename = receipt_filename(trip_name, note.get('description', ''), index, extension)
        mimetype = 'application/pdf' if extension == 'pdf' else f'image/{extension}'
        receipts.append((filename, content, mimetype))
    return receipts


def fetch_receipt(url, timeout=10):
    """Return the receipt bytes, or None when the download fails."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"[EMAIL] Erreur téléchargement {url}: {e}")
        return None
    return response.content


def receipt_extension(url):
    """Guess the attachment extension from the receipt URL (pdf by default)."""
    extension = 'pdf'
    if '.png' in url:
        extension = 'png'
    if '.jpg' in url or '.jpeg' in url:
        extension = 'jpg'
    return extension


def receipt_filename(trip_name, description, index, extension):
    clean_description = re.sub(r'[^a-zA-Z0-9\-_]', '', description or '')
    return f'{trip_name}-{clean_description}-{index}.{extension}'


def _send_with_retry(msg, email_id, recipient):
    """
    Send a prepared message with exponential backoff retry.

    Args:
        msg: EmailMessage object (already built)
        email_id: Tracking ID for logging
        recipient: Recipient email for logging

    Returns:
        None when sent, otherwise the last error
    """
    last_error = None
    for attempt in range(1, MAX_RETRIES + 1):
        try:
            msg.send()
            logger.info(f"[EMAIL:{email_id}] Succès - Email envoyé à {recipient}"
                        + (f" (tentative {attempt})" if attempt > 1 else ""))
            return None
        except Exception as e:
            last_error = e
            if attempt < MAX_RETRIES:
                delay = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                logger.warning(
                    f"[EMAIL:{email_id}] Tentative {attempt}/{MAX_RETRIES} échouée "
                    f"pour {recipient}: {e}, nouvel essai dans {delay}s"
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"[EMAIL:{email_id}] Échec définitif après {MAX_RETRIES} tentatives "
                    f"pour {recipient}: {last_error}"
                )
    return last_error


def _html_to_text(html_content):
    """
    Basic HTML to plain text conversion.
    Strips HTML tags for plain text email version.
    """
    text = re.sub(r'<style[^>]*>.*?</style>', '', html_content, flags=re.S)
    text = re.sub(r'<[^>]+>', '', text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text
