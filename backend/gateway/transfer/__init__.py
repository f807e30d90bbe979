from gateway.transfer.codec import TransferCodec

__all__ = ["TransferCodec"]
