from flask import Blueprint, request

from exavy.extensions import get_app_context
from exavy.services import subscription_api_service

subscription_bp = Blueprint('subscription_api', __name__)


@subscription_bp.route('/api/subscription', methods=['GET'])
def get_subscription():
    return subscription_api_service.get_subscription(get_app_context(), request)


@subscription_bp.route('/api/subscription/trial', methods=['POST'])
def start_trial():
    return subscription_api_service.start_trial(get_app_context(), request)


@subscription_bp.route('/api/usage/check', methods=['GET'])
def check_usage():
    return subscription_api_service.check_usage(get_app_context(), request)


@subscription_bp.route('/api/usage/record', methods=['POST'])
def record_usage():
    return subscription_api_service.record_usage(get_app_context(), request)


@subscription_bp.route('/api/usage/consume', methods=['POST'])
def consume_usage():
    return subscription_api_service.consume_usage(get_app_context(), request)
