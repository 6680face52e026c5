"""
Pydantic models for listings returned by the Compra Agil API.

Attribute names are English; aliases match the Spanish keys the API sends so
``model_dump(by_alias=True)`` reproduces the wire layout.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

_WIRE = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class Opportunity(BaseModel):
    """A single listing from the search endpoint. Identity is ``code``."""

    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="allow",
        frozen=True,
    )

    code: str = Field(..., alias="codigo")
    name: Optional[str] = Field(None, alias="nombre")
    organization: Optional[str] = Field(None, alias="organismo")
    currency: Optional[str] = Field(None, alias="moneda")
    available_amount: Optional[float] = Field(None, alias="montoDisponible")
    closing_date: Optional[str] = Field(None, alias="fechaCierre")
    own_offers: Optional[int] = Field(None, alias="misOfertas")
    total_offers: Optional[int] = Field(None, alias="numeroOfertas")
    status: Optional[Union[int, str]] = Field(None, alias="estado")

    def summary(self) -> Dict[str, Any]:
        amount = (
            f"{self.available_amount:,.0f}"
            if self.available_amount is not None
            else "N/A"
        )
        return {
            "codigo": self.code,
            "nombre": self.name,
            "organismo": self.organization,
            "monto": f"{self.currency} {amount}",
            "cierre": self.closing_date[:10] if self.closing_date else None,
            "estado": self.status,
        }


class PageResult(BaseModel):
    """One page of search results, as reported by the server."""

    page_number: int
    items: List[Opportunity] = Field(default_factory=list)
    page_count: Optional[int] = None
    total: Optional[int] = None


class CrawlFilters(BaseModel):
    """Query filters for the listing search endpoint."""

    since: date
    until: date
    order_by: int = 2
    status: int = 2
    size: int = 20
    region: Optional[int] = None
    mis_rubros: bool = False

    def to_query(self, page: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "desde": self.since.strftime("%d/%m/%Y"),
            "hasta": self.until.strftime("%d/%m/%Y"),
            "orderBy": self.order_by,
            "page": page,
            "estado": self.status,
            "size": self.size,
        }
        if self.region is not None:
            params["region"] = self.region
        if self.mis_rubros:
            params["misRubros"] = 1
        return params


class Unit(BaseModel):
    model_config = _WIRE

    code: Optional[str] = Field(None, alias="codigo")
    name: Optional[str] = Field(None, alias="nombre")


class ProductLine(BaseModel):
    model_config = _WIRE

    product_code: Optional[str] = Field(None, alias="codigoProducto")
    quantity: Optional[float] = Field(None, alias="cantidad")
    description: Optional[str] = Field(None, alias="descripcion")
    name: Optional[str] = Field(None, alias="nombre")
    unit: Optional[Unit] = Field(None, alias="unidad")


class Institution(BaseModel):
    model_config = _WIRE

    company: Optional[str] = Field(None, alias="empresa")
    organization: Optional[str] = Field(None, alias="organizacion")
    rut: Optional[str] = None


class OpportunityDetail(BaseModel):
    model_config = _WIRE

    description: Optional[str] = Field(None, alias="descripcion")
    currency: Optional[str] = Field(None, alias="moneda")
    currency_amount: Optional[float] = Field(None, alias="montoMoneda")
    estimated_total: Optional[float] = Field(None, alias="montoTotalEstimado")
    delivery_term: Optional[Any] = Field(None, alias="plazoEntrega")
    address: Optional[Any] = Field(None, alias="direccion")
    products: List[ProductLine] = Field(default_factory=list, alias="productos")
    institution: Optional[Institution] = Field(None, alias="institucion")


class EnrichedOpportunity(BaseModel):
    """A listing plus the detail fetched for it."""

    model_config = _WIRE

    code: str = Field(..., alias="codigo")
    name: Optional[str] = Field(None, alias="nombre")
    organization: Optional[str] = Field(None, alias="organismo")
    available_amount: Optional[float] = Field(None, alias="montoDisponible")
    closing_date: Optional[str] = Field(None, alias="fechaCierre")
    detail: OpportunityDetail = Field(..., alias="detalle")


__all__ = [
    "CrawlFilters",
    "EnrichedOpportunity",
    "Institution",
    "Opportunity",
    "OpportunityDetail",
    "PageResult",
    "ProductLine",
    "Unit",
]
