from medibill import create_app

app = create_app()
