"""Models package."""

from .credit_balance import CreditBalance
from .usage_log import UsageLog
from .generation import Generation
from .billing_plan import BillingPlan
from .subscription import Subscription
from .credit_grant import CreditGrant
