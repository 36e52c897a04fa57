"""Webhook payload schema.

The automation tool posts one JSON document per event with three blocks:
``hook`` (event string and fired time), ``contact`` (the recipient) and
``messenger`` (sending account, instance token and optional timestamps).
Unknown fields are ignored so new sender fields never break ingestion.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class _Block(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class HookBlock(_Block):
    event: Optional[str] = None
    fired_datetime: Optional[str] = None


class CompanyBlock(_Block):
    name: Optional[str] = None


class ContactBlock(_Block):
    id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[CompanyBlock] = None
    company_name: Optional[str] = None
    job_title: Optional[str] = None
    profile_link: Optional[str] = None
    profile_link_public_identifier: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def resolved_company_name(self) -> Optional[str]:
        if self.company is not None and self.company.name:
            return self.company.name
        return self.company_name

    @property
    def resolved_profile_link(self) -> Optional[str]:
        return self.profile_link or self.profile_link_public_identifier


class MessengerBlock(_Block):
    li_account: Optional[Union[int, str]] = None
    campaign_instance: Optional[str] = None
    invited_at: Optional[str] = None
    connected_at: Optional[str] = None
    replied_at: Optional[str] = None
    conversation_status: Optional[str] = None


class WebhookPayload(_Block):
    hook: Optional[HookBlock] = None
    contact: Optional[ContactBlock] = None
    messenger: Optional[MessengerBlock] = None

    def missing_required_fields(self) -> list[str]:
        """Names of required fields that are absent, in a stable order."""
        missing = []
        if self.contact is None:
            missing.append("contact")
        elif self.contact.id is None:
            missing.append("contact.id")

        if self.messenger is None:
            missing.append("messenger")
        else:
            if not self.messenger.campaign_instance:
                missing.append("messenger.campaign_instance")
            if self.messenger.li_account in (None, ""):
                missing.append("messenger.li_account")
        return missing
