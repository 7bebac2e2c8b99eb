from flask import Blueprint, request

from exavy.extensions import get_app_context
from exavy.services import payments_api_service

payments_bp = Blueprint('payments_api', __name__)


@payments_bp.route('/api/plans', methods=['GET'])
def get_plans():
    return payments_api_service.get_plans(get_app_context())


@payments_bp.route('/api/create-checkout-session', methods=['POST'])
def create_checkout_session():
    return payments_api_service.create_checkout_session(get_app_context(), request)


@payments_bp.route('/api/stripe-webhook', methods=['POST'])
def stripe_webhook():
    return payments_api_service.stripe_webhook(get_app_context(), request)
