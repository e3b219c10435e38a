# orderflow/services/payment_client.py
import base64
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

import requests
from requests import RequestException

from orderflow.domain.errors import UpstreamError
from orderflow.utils.retry import http_retry
from orderflow.utils.settings import (
    HTTP_TIMEOUT_SECONDS,
    MPESA_CALLBACK_URL,
    MPESA_CONSUMER_KEY,
    MPESA_CONSUMER_SECRET,
    MPESA_ENV,
    MPESA_PASSKEY,
    MPESA_SHORTCODE,
)
from orderflow.utils.logging import get_logger

logger = get_logger(__name__)

SANDBOX_URL = "https://sandbox.safaricom.co.ke"
PRODUCTION_URL = "https://api.safaricom.co.ke"

# stkpushquery zwraca ten kod dopoki klient nie potwierdzi na telefonie
_STILL_PROCESSING = "500.001.1001"


class PaymentState:
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentInitiation:
    correlation_id: str
    merchant_request_id: str | None = None


@dataclass(frozen=True)
class ProviderStatus:
    state: str
    provider_txn_id: str | None = None
    description: str = ""


def format_phone(phone: str) -> str:
    """0712345678 / +254712345678 -> 254712345678"""
    phone = str(phone).strip().replace(" ", "")
    if phone.startswith("+"):
        phone = phone[1:]
    if phone.startswith("0"):
        phone = "254" + phone[1:]
    return phone


class MpesaClient:
    """
    Klient Daraja API (Lipa Na M-Pesa Online).

    Retry tylko dla operacji idempotentnych (token, status query). STK push
    nie jest ponawiany, bo drugi push to drugie obciazenie klienta.
    """

    def __init__(
        self,
        base_url: str | None = None,
        consumer_key: str | None = None,
        consumer_secret: str | None = None,
        shortcode: str | None = None,
        passkey: str | None = None,
        callback_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        default_url = PRODUCTION_URL if MPESA_ENV == "production" else SANDBOX_URL
        self.base_url = (base_url or default_url).rstrip("/")
        self.consumer_key = consumer_key or MPESA_CONSUMER_KEY
        self.consumer_secret = consumer_secret or MPESA_CONSUMER_SECRET
        self.shortcode = shortcode or MPESA_SHORTCODE
        self.passkey = passkey or MPESA_PASSKEY
        self.callback_url = callback_url or MPESA_CALLBACK_URL
        self.timeout = timeout

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode()
        return base64.b64encode(raw).decode()

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().strftime("%Y%m%d%H%M%S")

    @http_retry()
    def _fetch_token(self) -> str:
        url = f"{self.base_url}/oauth/v1/generate"
        logger.info(f"MpesaClient GET {url}")

        resp = requests.get(
            url,
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()["access_token"]

    def generate_token(self) -> str:
        if not self.consumer_key or not self.consumer_secret:
            raise UpstreamError("M-Pesa consumer key or secret not configured")
        try:
            return self._fetch_token()
        except (RequestException, KeyError, ValueError) as e:
            logger.error(f"Error generating M-Pesa token: {e}")
            raise UpstreamError("Failed to authenticate with payment provider") from e

    def initiate(self, order_ref: str, amount: Decimal, payer_handle: str) -> PaymentInitiation:
        if not self.shortcode or not self.passkey or not self.callback_url:
            raise UpstreamError("M-Pesa shortcode, passkey or callback URL not configured")

        token = self.generate_token()
        timestamp = self._timestamp()
        phone = format_phone(payer_handle)
        # M-Pesa przyjmuje tylko pelne kwoty
        whole_amount = int(Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        data = {
            "BusinessShortCode": self.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": whole_amount,
            "PartyA": phone,
            "PartyB": self.shortcode,
            "PhoneNumber": phone,
            "CallBackURL": self.callback_url,
            "AccountReference": order_ref,
            "TransactionDesc": f"Payment for order #{order_ref}",
        }

        url = f"{self.base_url}/mpesa/stkpush/v1/processrequest"
        logger.info(f"MpesaClient POST {url} ref={order_ref} amount={whole_amount}")

        try:
            resp = requests.post(
                url,
                json=data,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            body = resp.json()
            return PaymentInitiation(
                correlation_id=body["CheckoutRequestID"],
                merchant_request_id=body.get("MerchantRequestID"),
            )
        except (RequestException, KeyError, ValueError) as e:
            logger.error(f"Error initiating M-Pesa STK push for {order_ref}: {e}")
            raise UpstreamError("Failed to initiate payment") from e

    @http_retry()
    def _post_query(self, token: str, data: dict) -> requests.Response:
        url = f"{self.base_url}/mpesa/stkpushquery/v1/query"
        logger.info(f"MpesaClient POST {url}")
        resp = requests.post(
            url,
            json=data,
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        )
        # 5xx -> retry; 4xx i "still processing" (tez 500) idzie do parse_query_response
        if resp.status_code >= 500 and not _is_still_processing(resp):
            resp.raise_for_status()
        return resp

    def query_status(self, correlation_id: str) -> ProviderStatus:
        token = self.generate_token()
        timestamp = self._timestamp()
        data = {
            "BusinessShortCode": self.shortcode,
            "Password": self._password(timestamp),
            "Timestamp": timestamp,
            "CheckoutRequestID": correlation_id,
        }

        try:
            resp = self._post_query(token, data)
            body = resp.json()
        except (RequestException, ValueError) as e:
            logger.error(f"Error checking M-Pesa status for {correlation_id}: {e}")
            raise UpstreamError("Failed to check payment status") from e

        return parse_query_response(resp.status_code, body)


def _is_still_processing(resp) -> bool:
    try:
        body = resp.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("errorCode") == _STILL_PROCESSING


def parse_query_response(status_code: int, body: dict) -> ProviderStatus:
    if body.get("errorCode") == _STILL_PROCESSING:
        return ProviderStatus(state=PaymentState.PENDING, description=body.get("errorMessage", ""))

    if status_code >= 400 or "ResultCode" not in body:
        raise UpstreamError(body.get("errorMessage") or f"Unexpected provider response ({status_code})")

    description = body.get("ResultDesc", "")
    if str(body["ResultCode"]) == "0":
        return ProviderStatus(
            state=PaymentState.SUCCEEDED,
            provider_txn_id=body.get("CheckoutRequestID"),
            description=description,
        )
    return ProviderStatus(state=PaymentState.FAILED, description=description)


def parse_callback(payload: dict) -> tuple[str, ProviderStatus]:
    """
    Body.stkCallback -> (correlation_id, status).

    Raises ValueError on a malformed payload.
    """
    callback = (payload or {}).get("Body", {}).get("stkCallback")
    if not callback or "CheckoutRequestID" not in callback:
        raise ValueError("Invalid M-Pesa callback format")

    correlation_id = callback["CheckoutRequestID"]
    description = callback.get("ResultDesc", "")

    if str(callback.get("ResultCode")) != "0":
        return correlation_id, ProviderStatus(state=PaymentState.FAILED, description=description)

    metadata = {}
    for item in (callback.get("CallbackMetadata") or {}).get("Item", []):
        if item.get("Name") and item.get("Value") is not None:
            metadata[item["Name"]] = item["Value"]

    return correlation_id, ProviderStatus(
        state=PaymentState.SUCCEEDED,
        provider_txn_id=str(metadata.get("MpesaReceiptNumber") or correlation_id),
        description=description,
    )
