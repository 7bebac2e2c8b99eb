from flask import Blueprint, request

from exavy.extensions import get_app_context
from exavy.services import otp_api_service

otp_bp = Blueprint('otp_api', __name__)


@otp_bp.route('/api/otp/send', methods=['POST'])
def send_otp():
    return otp_api_service.send_otp(get_app_context(), request)


@otp_bp.route('/api/otp/verify', methods=['POST'])
def verify_otp():
    return otp_api_service.verify_otp(get_app_context(), request)
