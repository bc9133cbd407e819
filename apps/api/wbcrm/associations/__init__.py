from wbcrm.associations.models import (
    DealProduct,
    LeadICP,
    LeadProduct,
    OrganizationICP,
    OrganizationProduct,
    PartnerProduct,
)

__all__ = ["LeadProduct", "OrganizationProduct", "DealProduct", "PartnerProduct", "LeadICP", "OrganizationICP"]
