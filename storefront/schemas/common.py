"""
Shared schema types
"""
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator

from storefront.core.utils import quantize_money

# Exact to the cent; serialized as a decimal string in JSON
Money = Annotated[Decimal, AfterValidator(quantize_money)]
