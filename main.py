"""Main entry point for the bus booking service."""

from bus_booking_service.main import app

def main():
    """Main function for CLI entry point."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3004)

if __name__ == "__main__":
    main()
