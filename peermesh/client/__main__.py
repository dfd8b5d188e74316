from peermesh.client.client import main

main()
