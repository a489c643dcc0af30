from shopstock import create_app

app = create_app()
