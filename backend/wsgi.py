from copperwire import create_app

app = create_app()
