import logging
import re

import httpx

from olympiad.core.errors import UpstreamError, ValidationFailed

logger = logging.getLogger(__name__)

IFSC_PATTERN = re.compile(r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$")
UPI_PATTERN = re.compile(r"^[\w.-]{2,256}@[a-zA-Z]{2,64}$")
ACCOUNT_NUMBER_PATTERN = re.compile(r"^[0-9]{9,18}$")


def is_valid_ifsc(ifsc: str) -> bool:
    return bool(ifsc) and bool(IFSC_PATTERN.match(ifsc))


def is_valid_upi(upi_id: str) -> bool:
    return bool(upi_id) and bool(UPI_PATTERN.match(upi_id))


def is_valid_account_number(account_number: str) -> bool:
    return bool(account_number) and bool(ACCOUNT_NUMBER_PATTERN.match(account_number))


class IfscLookup:
    """Bank name and branch for an IFSC code via the public Razorpay IFSC API"""

    def __init__(self, base_url: str = "https://ifsc.razorpay.com", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def lookup(self, ifsc: str) -> dict:
        if not is_valid_ifsc(ifsc):
            raise ValidationFailed("Invalid IFSC code format.")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(f"{self.base_url}/{ifsc.upper()}")
        except httpx.RequestError as e:
            logger.warning(f"[BANK] IFSC lookup for {ifsc} failed: {e}")
            raise UpstreamError("Unable to fetch bank details.")

        if response.status_code == 404:
            raise ValidationFailed("Invalid IFSC code.")
        if response.status_code != 200:
            logger.warning(f"[BANK] IFSC lookup for {ifsc} returned {response.status_code}")
            raise UpstreamError("Unable to fetch bank details.")

        data = response.json()
        return {"bankName": data.get("BANK", ""), "branch": data.get("BRANCH", ""), "ifsc": ifsc.upper()}
