"""
Pricing service - subtotal, tax and total of a cart
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from models.cart import CartLine, CartSnapshot, CartTotals, LineTotals
from models.product import GstType

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    # half away from zero, 2 places
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingPolicy:
    """Global fallbacks for lines that carry no tax information"""
    tax_rate: Decimal = Decimal("5")
    currency_symbol: str = "₹"
    default_gst_type: GstType = GstType.EXCLUSIVE


class PricingService:
    # Pure: same cart and policy always give the same totals

    def __init__(self, policy: PricingPolicy = PricingPolicy()):
        self.policy = policy

    def line_totals(self, line: CartLine) -> LineTotals:
        rate = line.tax_rate if line.tax_rate is not None else self.policy.tax_rate
        gst_type = line.gst_type or self.policy.default_gst_type
        line_subtotal = round_money(line.unit_price * line.count)
        r = Decimal(rate) / HUNDRED

        if gst_type is GstType.INCLUSIVE:
            # tax extracted from the gross price
            tax = round_money(line_subtotal * r / (1 + r))
        else:
            tax = round_money(line_subtotal * r)

        return LineTotals(
            item_id=line.item_id,
            name=line.name,
            count=line.count,
            unit_price=line.unit_price,
            line_subtotal=line_subtotal,
            tax_rate=Decimal(rate),
            gst_type=gst_type,
            tax=tax,
        )

    def totals(self, cart: CartSnapshot) -> CartTotals:
        """Aggregate from the rounded per-line values.

        Inclusive lines contribute their full gross to the subtotal and only
        exclusive tax is added on top of it.
        """
        lines = tuple(self.line_totals(line) for line in cart)
        subtotal = sum((line.line_subtotal for line in lines), Decimal("0.00"))
        tax = sum((line.tax for line in lines), Decimal("0.00"))
        exclusive_tax = sum((line.tax for line in lines if line.gst_type is GstType.EXCLUSIVE), Decimal("0.00"))
        half = round_money(tax / 2)
        return CartTotals(
            subtotal=round_money(subtotal),
            tax=round_money(tax),
            total=round_money(subtotal + exclusive_tax),
            cgst=half,
            sgst=round_money(tax - half),
            currency_symbol=self.policy.currency_symbol,
            lines=lines,
        )

    def format_amount(self, amount: Decimal) -> str:
        return f"{self.policy.currency_symbol}{round_money(amount):,.2f}"
