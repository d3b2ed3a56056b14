from .gateways import BillingGateway, ServiceRecordStore, SettingsStore

__all__ = ["BillingGateway", "ServiceRecordStore", "SettingsStore"]
