from revshare.integrations.transfers import (
    StripeTransferClient,
    TransferClient,
    TransferReceipt,
    get_transfer_client,
)

__all__ = ["StripeTransferClient", "TransferClient", "TransferReceipt", "get_transfer_client"]
