"""
Common schemas for API responses and error handling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: Optional[str] = None
    timestamp: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": {
                        "error_code": "SEATS_ALREADY_BOOKED",
                        "message": "Seats already booked: A1",
                        "details": {"trip_id": "T1", "seats": ["A1"]},
                        "suggestions": ["Choose different seats", "Refresh the seat map"]
                    }
                },
                {
                    "error": {
                        "error_code": "POLICY_VIOLATION",
                        "message": "Modifications are not allowed: No changes less than 2 hours before departure",
                        "details": {"tier": "No Modifications Allowed"}
                    }
                }
            ]
        }
    }


class PaginationInfo(BaseModel):
    """Schema for pagination information."""

    page: int = Field(..., description="Current page number")
    limit: int = Field(..., description="Number of items per page")
    total: int = Field(..., description="Total number of items")
    total_pages: int = Field(..., description="Total number of pages")
