"""
Razorpay支付网关封装
负责创建网关订单以及校验支付回调签名
"""

import asyncio
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import razorpay

from app.core.config import settings
from app.api.exceptions import PaymentConfigurationError, PaymentGatewayError

logger = logging.getLogger(__name__)


def compute_payment_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    """HMAC-SHA256(secret, "{order_id}|{payment_id}") 的十六进制摘要"""
    body = f"{gateway_order_id}|{gateway_payment_id}"
    return hmac.new(
        secret.encode("utf-8"),
        body.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()


def verify_payment_signature(
    secret: str,
    gateway_order_id: Optional[str],
    gateway_payment_id: Optional[str],
    signature: Optional[str]
) -> bool:
    """常量时间比较回调签名，缺少任一字段视为不匹配"""
    if not gateway_order_id or not gateway_payment_id or not signature:
        return False
    expected = compute_payment_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class RazorpayGateway:
    """Razorpay网关客户端"""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        client: Optional[Any] = None
    ):
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self.key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self._client = client

    @property
    def client(self):
        """延迟创建SDK客户端"""
        if self._client is None:
            if not self.key_id or not self.key_secret:
                raise PaymentConfigurationError("Razorpay credentials not configured")
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def verify_signature(
        self,
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        signature: Optional[str]
    ) -> bool:
        """校验支付回调签名"""
        if not self.key_secret:
            raise PaymentConfigurationError("Razorpay secret not configured")
        return verify_payment_signature(
            self.key_secret, gateway_order_id, gateway_payment_id, signature
        )

    async def create_order(
        self,
        amount_paise: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """在网关侧创建订单，金额单位为paise"""
        if not self.key_id or not self.key_secret:
            raise PaymentConfigurationError("Razorpay credentials not configured")

        payload = {
            "amount": amount_paise,
            "currency": currency,
            "receipt": receipt[:40],
            "notes": notes or {}
        }
        try:
            # SDK为同步HTTP调用，放到线程中执行
            order = await asyncio.to_thread(self.client.order.create, payload)
        except Exception as e:
            logger.error(f"Razorpay创建订单失败 receipt={receipt}: {e}")
            raise PaymentGatewayError("Failed to create payment order with gateway") from e

        logger.info(f"Razorpay订单创建成功 receipt={receipt} gateway_order={order.get('id')}")
        return order
