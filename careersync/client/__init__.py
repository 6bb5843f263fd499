from .reconcile import (
    BillingClient,
    BillingClientError,
    PaymentWatcher,
    PushUnavailable,
    SuccessGuard,
    WatchResult,
    recover_session,
    run_checkout,
)
