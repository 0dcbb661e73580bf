from skelgate.cli import main

main()
