from peermesh.server.signaling_server import main

main()
