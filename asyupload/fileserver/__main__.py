from asyupload.fileserver.server import main

main()
