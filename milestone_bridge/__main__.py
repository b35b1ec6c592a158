from .ws_server import main

main()
