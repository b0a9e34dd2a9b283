from inventory_analytics import create_app

app = create_app()
