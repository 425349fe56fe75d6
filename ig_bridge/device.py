"""Device identity used to build the app user-agent string."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Device:
    app_version: str = "27.0.0.7.97"
    android_version: str = "24"
    android_release: str = "7.0"
    dpi: str = "380dpi"
    resolution: str = "1080x1920"
    manufacturer: str = "OnePlus"
    brand: str | None = None
    model: str = "ONEPLUS A3010"
    device: str = "OnePlus3T"
    cpu: str = "qcom"
    locale: str = "en_US"

    @property
    def device_string(self) -> str:
        maker = self.manufacturer
        if self.brand:
            maker = f"{self.manufacturer}/{self.brand}"
        return (
            f"{self.android_version}/{self.android_release}; {self.dpi}; {self.resolution}; "
            f"{maker}; {self.model}; {self.device}; {self.cpu}"
        )

    @property
    def user_agent(self) -> str:
        return f"Instagram {self.app_version} Android ({self.device_string}; {self.locale})"
