from gateway.staging.policy import StagedObject, StagingPolicy, StagingTier, UploadPayload

__all__ = ["StagedObject", "StagingPolicy", "StagingTier", "UploadPayload"]
