"""FCrDNS validation schemas"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ValidationIssue(BaseModel):
    """Named problem found during validation"""
    code: str
    message: str


class FcrDnsResult(BaseModel):
    """Outcome of a forward-confirmed reverse DNS check"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    fqdn: str
    ip: str
    has_forward_dns: bool = False
    has_reverse_dns: bool = False
    has_fcrdns: bool = Field(False, alias="hasFcrDns")
    forward_ip: Optional[str] = None
    reverse_fqdn: Optional[str] = None
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)

    def passes(self) -> bool:
        return self.has_fcrdns and not self.errors

    def error_codes(self) -> List[str]:
        return [issue.code for issue in self.errors]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
